"""
Domain records passed between the stages of a publish run.

These are plain frozen dataclasses: they describe *our* side of the
pipeline.  The JSON bodies sent to Microsoft Graph live in
``functions/graph_payloads.py``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

DEFAULT_DIGEST_ALGORITHM = "SHA256"
PROFILE_IDENTIFIER = "ProfileVersion1"


@dataclass(frozen=True)
class ApplicationInfo:
    """The application being published.

    Attributes:
        manufacturer: Vendor name, shown as the Intune publisher.
        name: Product name.
        version: Product version, shown as the Intune display version.
        install_context: "System" or "User".
        source_path: Folder the package was generated from.
    """

    manufacturer: str
    name: str
    version: str = ""
    install_context: str = "System"
    source_path: str = ""

    @property
    def display_name(self) -> str:
        return f"{self.manufacturer} {self.name}".strip()


@dataclass(frozen=True)
class EncryptionInfo:
    """Encryption metadata copied verbatim from detection.xml.

    All values are base64 strings we transport but never interpret.
    """

    encryption_key: str
    mac_key: str = ""
    initialization_vector: str = ""
    mac: str = ""
    file_digest: str = ""
    file_digest_algorithm: str = DEFAULT_DIGEST_ALGORITHM
    profile_identifier: str = PROFILE_IDENTIFIER


@dataclass(frozen=True)
class ContainerMetadata:
    """What the extractor pulled out of a .intunewin container."""

    file_name: str
    unencrypted_content_size: int
    encrypted_file_path: Path
    temp_directory: Path
    encryption_info: EncryptionInfo

    @property
    def encrypted_size(self) -> int:
        return self.encrypted_file_path.stat().st_size


# --------------------------------------------------------------------------------------
# Detection rules (closed variant: file / registry / script)
# --------------------------------------------------------------------------------------
@dataclass(frozen=True)
class FileDetectionRule:
    path: str
    file_or_folder_name: str
    check_version: bool = False
    operator: Optional[str] = None
    detection_value: Optional[str] = None
    check_32bit_on_64bit: bool = False


@dataclass(frozen=True)
class RegistryDetectionRule:
    key_path: str
    hive: str = "HKEY_LOCAL_MACHINE"
    value_name: Optional[str] = None
    operator: Optional[str] = None
    expected_value: Optional[str] = None
    check_32bit_on_64bit: bool = False


@dataclass(frozen=True)
class ScriptDetectionRule:
    script_content: str
    enforce_signature_check: bool = False
    run_as_32bit: bool = False


DetectionRule = Union[FileDetectionRule, RegistryDetectionRule, ScriptDetectionRule]


@dataclass(frozen=True)
class PublishRequest:
    """Everything one publish run needs from the caller.

    ``package_path`` is the generated package folder: it holds the
    ``Application`` folder fed to the converter and receives the ``Intune``
    output folder.
    """

    app_info: ApplicationInfo
    package_path: Path
    install_command: str
    uninstall_command: str
    description: str = ""
    detection_rules: List[DetectionRule] = field(default_factory=list)
    setup_file_name: Optional[str] = None


@dataclass(frozen=True)
class PublishResult:
    app_id: str
    content_version_id: str
    file_id: str
    display_name: str
