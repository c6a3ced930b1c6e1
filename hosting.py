"""
Client for the static-hosting deployment API.

``POST /v13/deployments`` creates a deployment from an inline file list and
returns immediately with the deployment id and URL; the build finishes on
the provider side. ``GET /v13/deployments/{uid}`` reports its progress.
"""
import base64
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

import httpx

from errors import UpstreamError

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]

READY = "READY"
ERROR = "ERROR"
CANCELED = "CANCELED"
TERMINAL_STATES = frozenset([READY, ERROR, CANCELED])
FAILED_STATES = frozenset([ERROR, CANCELED])


@dataclass
class Deployment:
    uid: str
    url: str
    ready_state: str
    alias: Optional[str] = None
    error: Optional[str] = None

    @property
    def https_url(self) -> str:
        if not self.url:
            return ""
        return self.url if self.url.startswith("http") else f"https://{self.url}"

    @property
    def finished(self) -> bool:
        return self.ready_state in TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self.ready_state in FAILED_STATES


def encode_files(files: Dict[str, str]) -> List[Dict[str, str]]:
    return [
        {"file": name, "data": base64.b64encode(content.encode("utf-8")).decode("ascii"), "encoding": "base64"}
        for name, content in files.items()
    ]


def _error_text(payload: Any) -> Optional[str]:
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or error.get("code")
        if isinstance(error, str):
            return error
        return payload.get("errorMessage")
    return None


def _deployment(payload: Dict[str, Any]) -> Deployment:
    alias = payload.get("alias")
    if isinstance(alias, list):
        alias = alias[0] if alias else None
    return Deployment(
        uid=str(payload.get("uid") or payload.get("id") or ""),
        url=str(payload.get("url") or ""),
        ready_state=str(payload.get("readyState") or payload.get("state") or "QUEUED").upper(),
        alias=alias,
        error=_error_text(payload),
    )


class HostingClient:
    def __init__(self, token: Optional[str], base_url: str = "https://api.vercel.com", team_id: Optional[str] = None,
                 timeout: float = 30.0, transport: Optional[httpx.BaseTransport] = None):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.team_id = team_id
        self.timeout = timeout
        self.transport = transport

    def _request(self, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        if not self.token:
            raise UpstreamError("Hosting API token is not configured")
        params = {"teamId": self.team_id} if self.team_id else None
        try:
            with httpx.Client(base_url=self.base_url, timeout=self.timeout, transport=self.transport,
                              headers={"Authorization": f"Bearer {self.token}"}) as client:
                response = client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            raise UpstreamError(f"Hosting API timed out after {self.timeout:g}s") from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Hosting API request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = {"error": response.text[:500]}

        if response.status_code >= 400:
            message = _error_text(payload) or response.reason_phrase or "Unknown error"
            raise UpstreamError(f"Hosting API error: {message}", status=response.status_code, body=message)
        return payload if isinstance(payload, dict) else {}

    def create_deployment(self, name: str, files: Dict[str, str], target: str = "production",
                          log: Log = logger) -> Deployment:
        log.info("Creating %s deployment %s with %d files", target, name, len(files))
        body = {
            "name": name,
            "files": encode_files(files),
            "target": target,
            "projectSettings": {
                "framework": None,
                "buildCommand": None,
                "outputDirectory": None,
                "installCommand": None,
                "devCommand": None,
            },
        }
        deployment = _deployment(self._request("POST", "/v13/deployments", json=body))
        if not deployment.uid:
            raise UpstreamError("Hosting API accepted the deployment without an id")
        return deployment

    def get_deployment(self, uid: str) -> Deployment:
        return _deployment(self._request("GET", f"/v13/deployments/{uid}"))


def poll_deployment(client: HostingClient, uid: str, max_attempts: int = 10, base_delay: float = 2.0,
                    max_delay: float = 30.0, cancel: Optional[threading.Event] = None,
                    log: Log = logger) -> Deployment:
    """Check a deployment until it finishes, is cancelled, or the attempt ceiling is hit.

    Backoff doubles from ``base_delay`` up to ``max_delay``. Returns the last
    state seen; raises UpstreamError only if no check ever succeeded.
    """
    cancel = cancel or threading.Event()
    last: Optional[Deployment] = None
    last_error: Optional[UpstreamError] = None

    for attempt in range(max(1, max_attempts)):
        try:
            last = client.get_deployment(uid)
        except UpstreamError as exc:
            last_error = exc
            log.warning("Status check %d/%d for %s failed: %s", attempt + 1, max_attempts, uid, exc.message)
        else:
            log.info("Deployment %s is %s (%d/%d)", uid, last.ready_state, attempt + 1, max_attempts)
            if last.finished:
                return last

        if attempt + 1 >= max_attempts:
            break
        if cancel.wait(min(max_delay, base_delay * (2 ** attempt))):
            log.info("Status polling for %s cancelled", uid)
            break

    if last is None:
        raise last_error or UpstreamError(f"No status available for deployment {uid}")
    return last
