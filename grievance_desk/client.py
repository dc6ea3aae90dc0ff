"""
Client service layer for the Grievance Desk API.

Thin async wrappers around the HTTP endpoints. Every failure is re-raised as
:class:`ServiceError` with a prefix naming the operation, e.g.
``Failed to create grievance: Grievance not found``. Nothing is retried.
"""

import mimetypes
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import httpx

from .config import API_BASE_URL, MAX_FILE_SIZE
from .helpers import validate_file, validate_grievance_data

DEFAULT_TIMEOUT = httpx.Timeout(30.0, connect=5.0)
UPLOAD_TIMEOUT = httpx.Timeout(300.0, connect=5.0)

# (filename, content, content_type)
UploadItem = Tuple[str, bytes, str]


class ServiceError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


def _error_message(response: httpx.Response, fallback: str) -> Tuple[str, Optional[str]]:
    try:
        body = response.json()
    except ValueError:
        return f"{fallback} (HTTP {response.status_code})", None
    if isinstance(body, dict):
        return body.get("error") or body.get("message") or fallback, body.get("code")
    return fallback, None


class _BaseService:
    def __init__(self, base_url: str = API_BASE_URL, client: Optional[httpx.AsyncClient] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(transport=transport, timeout=DEFAULT_TIMEOUT)

    async def aclose(self):
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    def url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def _request(self, prefix: str, fallback: str, method: str, path: str,
                       **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, self.url(path), **kwargs)
        except httpx.HTTPError as e:
            raise ServiceError(f"{prefix}: {e}") from e
        if response.is_error:
            message, code = _error_message(response, fallback)
            raise ServiceError(f"{prefix}: {message}", response.status_code, code)
        return response


class GrievanceService(_BaseService):
    async def create_grievance(self, grievance_data: Dict[str, Any], validate: bool = False) -> Dict[str, Any]:
        """Submit a grievance; with ``validate`` the form rules run first."""
        if validate:
            result = validate_grievance_data(grievance_data)
            if not result["is_valid"]:
                raise ServiceError("Failed to create grievance: " + "; ".join(result["errors"]))
        response = await self._request("Failed to create grievance", "Failed to create grievance",
                                       "POST", "/grievances", json=grievance_data)
        return response.json()

    async def get_all_grievances(self, filters: Optional[Dict[str, Any]] = None) -> list:
        params = {k: v for k, v in (filters or {}).items() if v}
        response = await self._request("Failed to fetch grievances", "Failed to fetch grievances",
                                       "GET", "/grievances", params=params)
        return response.json()

    async def get_grievance(self, grievance_id: str) -> Dict[str, Any]:
        response = await self._request("Failed to fetch grievance", "Failed to fetch grievance",
                                       "GET", f"/grievances/{grievance_id}")
        return response.json()

    async def update_grievance_status(self, grievance_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("Failed to update grievance", "Failed to update grievance",
                                       "PATCH", f"/grievances/{grievance_id}/status", json=updates)
        return response.json()

    async def get_statistics(self) -> Dict[str, Any]:
        response = await self._request("Failed to fetch statistics", "Failed to fetch statistics",
                                       "GET", "/grievances/statistics")
        return response.json()


class FileUploadService(_BaseService):
    async def upload_files(self, files: Iterable[Union[UploadItem, Path]], grievance_id: str,
                           description: str = "", validate: bool = True,
                           max_size: int = MAX_FILE_SIZE) -> Dict[str, Any]:
        """Upload files for a grievance.

        ``files`` holds ``(filename, content, content_type)`` tuples or paths;
        a path's content type is guessed from its extension.
        """
        parts = []
        for item in files:
            if isinstance(item, Path):
                guessed = mimetypes.guess_type(item.name)[0] or "application/octet-stream"
                item = (item.name, item.read_bytes(), guessed)
            name, content, content_type = item
            if validate:
                check = validate_file(content_type, len(content), max_size)
                if not check["valid"]:
                    raise ServiceError(f"Upload preparation failed: {check['error']}")
            parts.append(("files", (name, content, content_type)))

        data = {"grievanceId": grievance_id, "description": description}
        response = await self._request("Upload failed", "Upload failed", "POST", "/upload",
                                       files=parts, data=data, timeout=UPLOAD_TIMEOUT)
        return response.json()

    async def get_files(self, grievance_id: str) -> Dict[str, Any]:
        response = await self._request("Failed to get files", "Failed to fetch files",
                                       "GET", f"/files/{grievance_id}")
        return response.json()

    async def download_file(self, file_id: str, destination: Optional[Path] = None) -> bytes:
        response = await self._request("Download failed", "Download failed",
                                       "GET", f"/download/{file_id}")
        if destination is not None:
            Path(destination).write_bytes(response.content)
        return response.content

    async def delete_file(self, file_id: str) -> Dict[str, Any]:
        response = await self._request("Delete failed", "Delete failed",
                                       "DELETE", f"/files/{file_id}")
        return response.json()

    def get_preview_url(self, file_id: str) -> str:
        return self.url(f"/preview/{file_id}")
