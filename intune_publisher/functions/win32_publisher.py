"""
End-to-end publishing of a packaged application as an Intune Win32 LOB app.

Phases, in order (percentages are what the progress callback receives)::

     5  Authenticate            token provider -> Graph client
    10  Convert                 IntuneWinAppUtil.exe
    15  LocateContainer         <package>/Intune/*.intunewin
    20  ExtractMetadata         detection.xml + encrypted payload
    25  CreateApp               POST mobileApps
    35  CreateContentVersion    POST .../contentVersions
    45  CreateFileEntry         POST .../files
    55  AwaitStorageUri         poll uploadState = AzureStorageUriRequestSuccess
 65-80  UploadBlob              6 MiB blocks + block list
    85  CommitFile              POST .../files/{id}/commit
    90  AwaitProcessing         poll uploadState = CommitFileSuccess
    95  CommitApp               PATCH committedContentVersion
   100  Done                    (temp files removed first, best effort)

Any failure aborts the run and is re-raised once as :class:`PublishError`.
Remote resources created before the failure are left in place.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from ..cancellation import CancellationToken
from ..errors import GraphRequestError, PublishError
from ..models import ApplicationInfo, ContainerMetadata, PublishRequest, PublishResult
from ..settings import PublisherSettings, get_settings
from .auth import TokenProvider
from .blob_uploader import ProgressCallback, upload_file
from .converter import IntuneWinConverter
from .detection_rules import encode_detection_rules
from .graph_client import GraphClient
from .graph_payloads import (
    FileCommit,
    FileEncryptionInfo,
    InstallExperience,
    MobileAppContentFile,
    Win32LobApp,
    Win32LobAppCommit,
)
from .intunewin import extract_intunewin, remove_extraction_dir
from .poller import COMMIT_FILE_STAGE, STORAGE_URI_STAGE, poll_stage

logger = logging.getLogger(__name__)

UPLOAD_PROGRESS_RANGE = (65, 80)


class _Progress:
    """Forwards to the caller's callback, never letting the percentage go down."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self._callback = callback
        self.percentage = 0

    def __call__(self, percentage: int, message: str) -> None:
        self.percentage = max(self.percentage, min(int(percentage), 100))
        logger.info("[%3d%%] %s", self.percentage, message)
        if self._callback is not None:
            self._callback(self.percentage, message)


class Win32AppPublisher:
    """
    Drives one publish run at a time against an explicitly supplied Graph
    client, token provider and converter.
    """

    def __init__(
        self,
        graph: GraphClient,
        token_provider: TokenProvider,
        converter: IntuneWinConverter,
        settings: Optional[PublisherSettings] = None,
    ):
        self.graph = graph
        self.token_provider = token_provider
        self.converter = converter
        self.settings = settings or get_settings()

    # --------------------------------------------------------------------------------------
    # public entry point
    # --------------------------------------------------------------------------------------
    def publish(
        self,
        request: PublishRequest,
        progress: Optional[ProgressCallback] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> PublishResult:
        """
        Convert, upload and commit *request* as a Win32 app.

        Returns
        -------
        PublishResult
            IDs of the created app, content version and content file.

        Raises
        ------
        PublishError
            Wrapping whatever went wrong, with the original as ``__cause__``.
        """
        report = _Progress(progress)
        token = cancel_token or CancellationToken()
        metadata: Optional[ContainerMetadata] = None

        logger.info("Publishing '%s' from %s", request.app_info.display_name, request.package_path)
        try:
            report(5, "Authenticating with Microsoft Graph...")
            self.graph.set_token(self.token_provider.get_access_token())

            token.raise_if_cancelled()
            report(10, "Converting package to .intunewin format...")
            output_folder = self._convert(request)

            token.raise_if_cancelled()
            report(15, "Locating .intunewin file...")
            container = self.converter.locate_container(output_folder)

            token.raise_if_cancelled()
            report(20, "Extracting .intunewin metadata...")
            metadata = extract_intunewin(container)

            token.raise_if_cancelled()
            report(25, "Creating application in Intune...")
            app_id = self.create_app(request, metadata)

            token.raise_if_cancelled()
            report(35, "Creating content version...")
            version_id = self.create_content_version(app_id)

            token.raise_if_cancelled()
            report(45, "Creating file entry...")
            file_id = self.create_file_entry(app_id, version_id, metadata)

            token.raise_if_cancelled()
            report(55, "Getting Azure Storage URI...")
            storage_uri = self.wait_for_storage_uri(app_id, version_id, file_id, token)

            report(UPLOAD_PROGRESS_RANGE[0], "Uploading file to Azure Storage...")
            upload_file(
                self.graph.session,
                storage_uri,
                metadata.encrypted_file_path,
                on_progress=report,
                progress_range=UPLOAD_PROGRESS_RANGE,
                block_size=self.settings.block_size,
                cancel_token=token,
                timeout=self.settings.http_timeout,
            )

            token.raise_if_cancelled()
            report(85, "Committing file...")
            self.commit_file(app_id, version_id, file_id, metadata)

            report(90, "Waiting for file processing...")
            self.wait_for_file_processing(app_id, version_id, file_id, COMMIT_FILE_STAGE, token)

            token.raise_if_cancelled()
            report(95, "Finalizing application...")
            self.commit_app(app_id, version_id)
        except Exception as exc:
            logger.error("Publishing '%s' failed: %s", request.app_info.display_name, exc)
            raise PublishError(exc) from exc
        finally:
            if metadata is not None:
                self._cleanup(metadata)

        report(100, "Application uploaded successfully!")
        logger.info("Upload finished successfully. App ID: %s", app_id)
        return PublishResult(
            app_id=app_id,
            content_version_id=version_id,
            file_id=file_id,
            display_name=request.app_info.display_name,
        )

    # --------------------------------------------------------------------------------------
    # phases
    # --------------------------------------------------------------------------------------
    def _setup_file_name(self, request: PublishRequest) -> str:
        return request.setup_file_name or self.settings.setup_file_name

    def _convert(self, request: PublishRequest) -> Path:
        package_path = Path(request.package_path)
        application_folder = package_path / self.settings.application_folder_name
        output_folder = package_path / self.settings.output_folder_name
        self.converter.convert(
            application_folder,
            application_folder / self._setup_file_name(request),
            output_folder,
        )
        return output_folder

    def build_app_payload(self, request: PublishRequest, metadata: ContainerMetadata) -> Win32LobApp:
        app_info: ApplicationInfo = request.app_info
        return Win32LobApp(
            display_name=app_info.display_name,
            description=request.description or app_info.display_name,
            publisher=app_info.manufacturer,
            display_version=app_info.version or None,
            install_command_line=request.install_command,
            uninstall_command_line=request.uninstall_command,
            minimum_supported_windows_release=self.settings.minimum_windows_release or None,
            file_name=metadata.file_name,
            setup_file_path=self._setup_file_name(request),
            install_experience=InstallExperience(run_as_account=(app_info.install_context or "System").lower()),
            detection_rules=encode_detection_rules(request.detection_rules, app_info),
        )

    def create_app(self, request: PublishRequest, metadata: ContainerMetadata) -> str:
        body = self.build_app_payload(request, metadata).to_graph()
        return self.graph.create(self.graph.mobile_apps_url, body, "Win32 app")["id"]

    def create_content_version(self, app_id: str) -> str:
        return self.graph.create(self.graph.content_versions_url(app_id), {}, "Content version")["id"]

    def create_file_entry(self, app_id: str, version_id: str, metadata: ContainerMetadata) -> str:
        body = MobileAppContentFile(
            name=metadata.file_name,
            size=metadata.unencrypted_content_size,
            size_encrypted=metadata.encrypted_size,
        ).to_graph()
        return self.graph.create(self.graph.files_url(app_id, version_id), body, "File entry")["id"]

    def wait_for_storage_uri(
        self, app_id: str, version_id: str, file_id: str, cancel_token: Optional[CancellationToken] = None
    ) -> str:
        url = self.graph.file_url(app_id, version_id, file_id)
        resource = poll_stage(
            lambda: self.graph.get(url),
            STORAGE_URI_STAGE,
            max_attempts=self.settings.storage_uri_max_attempts,
            delay=self.settings.storage_uri_delay,
            cancel_token=cancel_token,
        )
        storage_uri = resource.get("azureStorageUri")
        if not storage_uri:
            raise GraphRequestError("Azure Storage URI is null")
        logger.info("Got Azure Storage URI")
        return storage_uri

    def commit_file(self, app_id: str, version_id: str, file_id: str, metadata: ContainerMetadata) -> None:
        info = metadata.encryption_info
        body = FileCommit(
            file_encryption_info=FileEncryptionInfo(
                encryption_key=info.encryption_key,
                mac_key=info.mac_key,
                initialization_vector=info.initialization_vector,
                mac=info.mac,
                profile_identifier=info.profile_identifier,
                file_digest=info.file_digest,
                file_digest_algorithm=info.file_digest_algorithm,
            )
        ).to_graph()
        self.graph.post(f"{self.graph.file_url(app_id, version_id, file_id)}/commit", body)
        logger.info("File committed successfully")

    def wait_for_file_processing(
        self,
        app_id: str,
        version_id: str,
        file_id: str,
        stage: str,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        url = self.graph.file_url(app_id, version_id, file_id)
        poll_stage(
            lambda: self.graph.get(url),
            stage,
            max_attempts=self.settings.processing_max_attempts,
            delay=self.settings.processing_delay,
            cancel_token=cancel_token,
        )
        logger.info("File processing completed for stage: %s", stage)

    def commit_app(self, app_id: str, version_id: str) -> None:
        body = Win32LobAppCommit(committed_content_version=version_id).to_graph()
        self.graph.patch(self.graph.app_url(app_id), body)
        logger.info("App committed successfully")

    def _cleanup(self, metadata: ContainerMetadata) -> None:
        try:
            remove_extraction_dir(metadata)
        except OSError as exc:
            logger.warning("Failed to cleanup temp files %s: %s", metadata.temp_directory, exc)
