"""Thin HTTP client for the DiagNexus API, used by the CLI views."""

import logging
import re
from typing import Any, Optional

import httpx

logger = logging.getLogger("diagnexus.client")

_FILENAME = re.compile(r'filename="?([^";]+)"?')


class ApiError(Exception):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"HTTP {status_code}: {message}")


class ApiClient:
    def __init__(self, base_url: str = "http://localhost:8000", token: Optional[str] = None,
                 http: Optional[httpx.Client] = None, timeout: float = 30.0):
        self.http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self.token = token
        self.user: Optional[dict] = None

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self.http.request(method, path, headers=self._headers(), **kwargs)
        if response.is_error:
            message = f"HTTP {response.status_code}"
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    message = response.json().get("message") or message
                except ValueError:
                    logger.warning("Unparseable JSON error body from %s", path)
            raise ApiError(response.status_code, message)
        return response

    def _data(self, method: str, path: str, **kwargs) -> Any:
        return self._request(method, path, **kwargs).json().get("data")

    # Auth

    def login(self, email: str, password: str) -> dict:
        response = self._request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = response.headers.get("X-Auth-Token") or response.json()["data"]["access_token"]
        self.user = response.json()["data"]["user"]
        return self.user

    def logout(self):
        self.token = None
        self.user = None

    def me(self) -> dict:
        return self._data("GET", "/api/auth/me")

    # Reports

    def list_reports(self, user_id: Optional[int] = None) -> list[dict]:
        params = {"userId": user_id} if user_id is not None else None
        return self._data("GET", "/api/reports", params=params)

    def upload_report(self, filename: str, content: bytes, content_type: str, name: str,
                      comments: Optional[str] = None, user_id: Optional[int] = None) -> dict:
        form = {"name": name}
        if comments:
            form["comments"] = comments
        if user_id is not None:
            form["userId"] = str(user_id)
        files = {"file": (filename, content, content_type)}
        return self._data("POST", "/api/reports/upload", data=form, files=files)

    def download_report(self, report_id: int) -> tuple[str, bytes]:
        response = self._request("GET", f"/api/reports/{report_id}/download")
        match = _FILENAME.search(response.headers.get("content-disposition", ""))
        filename = match.group(1) if match else f"report_{report_id}"
        return filename, response.content

    def delete_report(self, report_id: int) -> dict:
        return self._data("DELETE", f"/api/reports/{report_id}")

    # Users

    def list_users(self) -> list[dict]:
        return self._data("GET", "/api/users")

    def create_user(self, role: str, name: str, email: str, password: str) -> dict:
        return self._data("POST", "/api/users", json={"role": role, "name": name, "email": email, "password": password})

    def update_user(self, user_id: int, **fields) -> dict:
        return self._data("PUT", f"/api/users/{user_id}", json=fields)

    def delete_user(self, user_id: int) -> dict:
        return self._data("DELETE", f"/api/users/{user_id}")
