"""
Thin Microsoft Graph client for the ``deviceAppManagement/mobileApps`` tree.

One :class:`GraphClient` owns one ``requests.Session``; create it per run or
per host process and close it when done (it is a context manager).  The
bearer token is attached per request, so the same session can also be used
for SAS-authorised blob PUTs without leaking the Graph credential to Azure
Storage.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

import requests

from ..errors import GraphRequestError

logger = logging.getLogger(__name__)

GRAPH_BASE = "https://graph.microsoft.com/beta"
WIN32_LOB_APP_SEGMENT = "microsoft.graph.win32LobApp"


class GraphClient:
    def __init__(
        self,
        base_url: str = GRAPH_BASE,
        timeout: float = 30 * 60,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token: Optional[str] = None

    # -- lifecycle -----------------------------------------------------------------
    def __enter__(self) -> "GraphClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    def set_token(self, token: str) -> None:
        self._token = token

    # -- urls ----------------------------------------------------------------------
    @property
    def mobile_apps_url(self) -> str:
        return f"{self.base_url}/deviceAppManagement/mobileApps"

    def app_url(self, app_id: str) -> str:
        return f"{self.mobile_apps_url}/{app_id}"

    def content_versions_url(self, app_id: str) -> str:
        return f"{self.app_url(app_id)}/{WIN32_LOB_APP_SEGMENT}/contentVersions"

    def files_url(self, app_id: str, version_id: str) -> str:
        return f"{self.content_versions_url(app_id)}/{version_id}/files"

    def file_url(self, app_id: str, version_id: str, file_id: str) -> str:
        return f"{self.files_url(app_id, version_id)}/{file_id}"

    # -- requests ------------------------------------------------------------------
    def _headers(self) -> Dict[str, str]:
        if not self._token:
            raise GraphRequestError("No access token set on the Graph client; authenticate first")
        return {
            "Authorization": f"Bearer {self._token}",
            "Accept": "application/json",
        }

    def request(self, method: str, url: str, json_body: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        """Generic Graph API request helper.

        Raises :class:`GraphRequestError` carrying the status code and the raw
        response body on any non-2xx status.
        """
        logger.debug("GRAPH %s %s", method, url)
        if json_body is not None:
            logger.debug("Payload: %s", json.dumps(json_body)[:1000])

        resp = self.session.request(method, url, headers=self._headers(), json=json_body, timeout=self.timeout)
        logger.debug("Response status: %s", resp.status_code)
        logger.debug("Response snippet: %s", resp.text[:500])

        if not resp.ok:
            raise GraphRequestError(
                f"{method} {url} failed. Status: {resp.status_code}, Response: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise GraphRequestError(
                f"{method} {url} returned a non-JSON body: {resp.text[:500]}",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc

    def get(self, url: str) -> Dict[str, Any]:
        return self.request("GET", url) or {}

    def post(self, url: str, json_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.request("POST", url, json_body)

    def patch(self, url: str, json_body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.request("PATCH", url, json_body)

    def create(self, url: str, json_body: Dict[str, Any], what: str) -> Dict[str, Any]:
        """POST that must return a resource with a non-null ``id``."""
        result = self.post(url, json_body) or {}
        if not result.get("id"):
            raise GraphRequestError(f"{what} ID not returned from creation: {json.dumps(result)[:500]}")
        logger.info("Created %s. ID: %s", what, result["id"])
        return result
