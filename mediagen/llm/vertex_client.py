"""Async REST client for Vertex AI publisher models."""

import asyncio
import logging
import threading
from typing import Any, Callable, Dict, Optional

import httpx

from mediagen.config import Settings
from mediagen.errors import BackendError

logger = logging.getLogger(__name__)

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class AdcTokenProvider:
    """Access tokens from Application Default Credentials (blocking).

    Credentials are resolved once and refreshed only when the cached
    token is no longer valid. Calls may come from several executor
    threads at once.
    """

    def __init__(self, scopes=None):
        self.scopes = scopes or _SCOPES
        self._creds = None
        self._lock = threading.Lock()

    def __call__(self) -> str:
        import google.auth
        from google.auth.transport.requests import Request

        with self._lock:
            if self._creds is None:
                self._creds, _project = google.auth.default(scopes=self.scopes)
            if not self._creds.valid:
                logger.debug("Refreshing Vertex AI access token")
                self._creds.refresh(Request())
            return str(self._creds.token)


def _error_message(resp: httpx.Response) -> Dict[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return {"message": resp.text[:500]}
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return {"message": error.get("message", ""), "backend_code": error.get("status") or error.get("code")}
    return {"message": str(body)[:500]}


class VertexClient:
    def __init__(
        self,
        project_id: str,
        region: str = "us-central1",
        access_token: Optional[str] = None,
        timeout: float = 120.0,
        http_client: Optional[httpx.AsyncClient] = None,
        token_provider: Optional[Callable[[], str]] = None,
    ):
        self.project_id = project_id
        self.region = region
        self.base_url = f"https://{region}-aiplatform.googleapis.com/v1"
        self._static_token = access_token
        self._token_provider = token_provider or AdcTokenProvider()
        self.client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "VertexClient":
        return cls(
            project_id=settings.gcp_project_id,
            region=settings.gcp_region,
            access_token=settings.vertex_access_token,
            timeout=settings.http_timeout_seconds,
        )

    async def close(self) -> None:
        await self.client.aclose()

    def model_path(self, model: str) -> str:
        return f"projects/{self.project_id}/locations/{self.region}/publishers/google/models/{model}"

    async def _token(self) -> str:
        if self._static_token:
            return self._static_token
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._token_provider)

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {await self._token()}",
            "Content-Type": "application/json",
        }
        resp = await self.client.post(f"{self.base_url}/{path}", json=payload, headers=headers)
        if resp.status_code >= 400:
            info = _error_message(resp)
            logger.error("Vertex call %s failed: HTTP %s %s", path, resp.status_code, info.get("message"))
            raise BackendError(
                f"Vertex AI HTTP {resp.status_code}: {info.get('message', '')}",
                details={"status": resp.status_code, **info},
            )
        return resp.json()

    async def generate_content(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post(f"{self.model_path(model)}:generateContent", payload)

    async def predict(self, model: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Synchronous prediction (Imagen)."""
        return await self._post(f"{self.model_path(model)}:predict", payload)

    async def predict_long_running(self, model: str, payload: Dict[str, Any]) -> str:
        """Start a long-running prediction. Returns the operation name."""
        operation = await self._post(f"{self.model_path(model)}:predictLongRunning", payload)
        name = operation.get("name") if isinstance(operation, dict) else None
        if not name:
            raise BackendError(
                f"{model} did not return an operation name",
                details={"response": operation},
            )
        return name

    async def fetch_predict_operation(self, model: str, operation_name: str) -> Dict[str, Any]:
        return await self._post(
            f"{self.model_path(model)}:fetchPredictOperation",
            {"operationName": operation_name},
        )
