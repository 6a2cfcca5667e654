from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, Iterator, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .errors import PreconditionError, PublishError
from .functions.auth import get_token_provider, reset_token_provider
from .functions.converter import IntuneWinConverter
from .functions.graph_client import GraphClient
from .functions.win32_publisher import Win32AppPublisher
from .middleware import cors_middleware_config
from .models import (
    ApplicationInfo,
    DetectionRule,
    FileDetectionRule,
    PublishRequest,
    RegistryDetectionRule,
    ScriptDetectionRule,
)
from .settings import configure_logging, get_settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    reset_token_provider()


app = FastAPI(title="Intune Publisher API", lifespan=lifespan)
_cors = cors_middleware_config(get_settings().cors_origins)
app.add_middleware(_cors.pop("middleware_class"), **_cors)


# --------------------------------------------------------------------------------------
# Request models
# --------------------------------------------------------------------------------------
class AppInfoBody(BaseModel):
    manufacturer: str
    name: str
    version: str = ""
    install_context: Literal["System", "User"] = "System"
    source_path: str = ""


class FileRuleBody(BaseModel):
    type: Literal["file"] = "file"
    path: str
    file_or_folder_name: str
    check_version: bool = False
    operator: Optional[str] = None
    detection_value: Optional[str] = None
    check_32bit_on_64bit: bool = False

    def to_rule(self) -> DetectionRule:
        return FileDetectionRule(**self.model_dump(exclude={"type"}))


class RegistryRuleBody(BaseModel):
    type: Literal["registry"] = "registry"
    key_path: str
    hive: str = "HKEY_LOCAL_MACHINE"
    value_name: Optional[str] = None
    operator: Optional[str] = None
    expected_value: Optional[str] = None
    check_32bit_on_64bit: bool = False

    def to_rule(self) -> DetectionRule:
        return RegistryDetectionRule(**self.model_dump(exclude={"type"}))


class ScriptRuleBody(BaseModel):
    type: Literal["script"] = "script"
    script_content: str
    enforce_signature_check: bool = False
    run_as_32bit: bool = False

    def to_rule(self) -> DetectionRule:
        return ScriptDetectionRule(**self.model_dump(exclude={"type"}))


RuleBody = Annotated[Union[FileRuleBody, RegistryRuleBody, ScriptRuleBody], Field(discriminator="type")]


class PublishBody(BaseModel):
    app_info: AppInfoBody
    package_path: str
    install_command: str
    uninstall_command: str
    description: str = ""
    detection_rules: List[RuleBody] = Field(default_factory=list)
    setup_file_name: Optional[str] = None

    def to_request(self) -> PublishRequest:
        return PublishRequest(
            app_info=ApplicationInfo(**self.app_info.model_dump()),
            package_path=Path(self.package_path),
            install_command=self.install_command,
            uninstall_command=self.uninstall_command,
            description=self.description,
            detection_rules=[rule.to_rule() for rule in self.detection_rules],
            setup_file_name=self.setup_file_name,
        )


# --------------------------------------------------------------------------------------
# Dependencies
# --------------------------------------------------------------------------------------
def get_publisher() -> Iterator[Win32AppPublisher]:
    """One Graph client (and HTTP session) per publish request; the token provider is shared."""
    settings = get_settings()
    try:
        token_provider = get_token_provider()
    except EnvironmentError as exc:
        logger.error("Cannot publish: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc))

    with GraphClient(settings.graph_base_url, timeout=settings.http_timeout) as graph:
        yield Win32AppPublisher(
            graph,
            token_provider,
            IntuneWinConverter(settings.converter_path, timeout=settings.converter_timeout),
            settings,
        )


# --------------------------------------------------------------------------------------
# Routes
# --------------------------------------------------------------------------------------
@app.get("/")
async def root():
    return {"message": "Welcome to the Intune Publisher API"}


@app.post("/apps", response_model=dict, status_code=201)
def publish_win32_app(body: PublishBody, publisher: Win32AppPublisher = Depends(get_publisher)):
    """
    Convert the package folder to .intunewin and publish it as a Win32 app.

    The package folder must contain ``Application/<setup file>`` on the API
    host.  Returns the new Intune app id.
    """
    try:
        result = publisher.publish(body.to_request())
        return {"app_id": result.app_id, "content_version_id": result.content_version_id}
    except PublishError as exc:
        status = 400 if isinstance(exc.cause, PreconditionError) else 500
        raise HTTPException(status_code=status, detail=str(exc))


if __name__ == "__main__":
    import uvicorn

    configure_logging()
    uvicorn.run("intune_publisher.api:app", host="0.0.0.0", port=8000)
