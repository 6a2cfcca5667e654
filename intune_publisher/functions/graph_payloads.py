"""
Typed request bodies for the Intune (Microsoft Graph beta) endpoints.

Each payload kind is a pydantic model whose ``odata_type`` class attribute
is emitted as the leading ``@odata.type`` key, followed by the model fields
in camelCase.  Optional fields left at ``None`` are dropped unless the
payload sets ``keep_nulls``.
"""

from __future__ import annotations

from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field, SerializerFunctionWrapHandler, model_serializer
from pydantic.alias_generators import to_camel


class GraphPayload(BaseModel):
    model_config = ConfigDict(
        alias_generator=AliasGenerator(serialization_alias=to_camel),
        frozen=True,
        extra="forbid",
    )

    odata_type: ClassVar[Optional[str]] = None
    keep_nulls: ClassVar[bool] = False

    @model_serializer(mode="wrap")
    def _with_discriminator(self, handler: SerializerFunctionWrapHandler) -> Dict[str, Any]:
        data = handler(self)
        if not self.keep_nulls:
            data = {key: value for key, value in data.items() if value is not None}
        if self.odata_type:
            return {"@odata.type": self.odata_type, **data}
        return data

    def to_graph(self) -> Dict[str, Any]:
        """Return the JSON-ready dict sent on the wire."""
        return self.model_dump(mode="json", by_alias=True)


# --------------------------------------------------------------------------------------
# Detection rules
# --------------------------------------------------------------------------------------
class FileSystemDetection(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobAppFileSystemDetection"

    path: str
    file_or_folder_name: str
    check_32bit_on_64bit: bool = Field(default=False, serialization_alias="check32BitOn64System")
    detection_type: str = "exists"
    operator: Optional[str] = None
    detection_value: Optional[str] = None


class RegistryDetection(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobAppRegistryDetection"

    key_path: str
    check_32bit_on_64bit: bool = Field(default=False, serialization_alias="check32BitOn64System")
    value_name: Optional[str] = None
    detection_type: str = "exists"
    operator: Optional[str] = None
    detection_value: Optional[str] = None


DetectionPayload = Union[FileSystemDetection, RegistryDetection]


# --------------------------------------------------------------------------------------
# mobileApps
# --------------------------------------------------------------------------------------
class InstallExperience(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobAppInstallExperience"

    run_as_account: str = "system"
    device_restart_behavior: str = "allow"


class ReturnCode(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobAppReturnCode"

    return_code: int
    type: str


DEFAULT_RETURN_CODES = (
    ReturnCode(return_code=0, type="success"),
    ReturnCode(return_code=3010, type="softReboot"),
    ReturnCode(return_code=1641, type="hardReboot"),
    ReturnCode(return_code=1618, type="retry"),
)


class Win32LobApp(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobApp"

    display_name: str
    description: str
    publisher: str
    display_version: Optional[str] = None
    install_command_line: str
    uninstall_command_line: str
    applicable_architectures: str = "x64"
    minimum_supported_windows_release: Optional[str] = None
    file_name: str
    setup_file_path: str
    install_experience: InstallExperience
    detection_rules: List[DetectionPayload]
    return_codes: List[ReturnCode] = Field(default_factory=lambda: list(DEFAULT_RETURN_CODES))


class Win32LobAppCommit(GraphPayload):
    """PATCH body pointing the app at its committed content version."""

    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.win32LobApp"

    committed_content_version: str


# --------------------------------------------------------------------------------------
# content files
# --------------------------------------------------------------------------------------
class MobileAppContentFile(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.mobileAppContentFile"
    keep_nulls: ClassVar[bool] = True

    name: str
    size: int
    size_encrypted: int
    manifest: Optional[str] = None
    is_dependency: bool = False


class FileEncryptionInfo(GraphPayload):
    odata_type: ClassVar[Optional[str]] = "#microsoft.graph.fileEncryptionInfo"
    keep_nulls: ClassVar[bool] = True

    encryption_key: str
    mac_key: str
    initialization_vector: str
    mac: str
    profile_identifier: str
    file_digest: str
    file_digest_algorithm: str


class FileCommit(GraphPayload):
    file_encryption_info: FileEncryptionInfo
