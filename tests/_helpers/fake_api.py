from __future__ import annotations

import json

import httpx


class FakeApi:
    """Scripted stand-in for the API, served through `httpx.MockTransport`.

    Protected endpoints accept only the most recently issued access token;
    `/auth/refresh` rotates the pair like the real server does.
    """

    def __init__(self):
        self.generation = 1
        self.access_token = "access-1"
        self.refresh_token = "refresh-1"
        self.refresh_status: int | None = None  # force a status on /auth/refresh
        self.refresh_error: Exception | None = None  # raise on /auth/refresh
        self.request_error: Exception | None = None  # raise on everything else
        self.reject_all = False  # protected endpoints always answer 401
        self.calls: list[tuple[str, str, str | None]] = []

    @property
    def refresh_calls(self) -> int:
        return sum(1 for _, path, _ in self.calls if path.endswith("/auth/refresh"))

    def calls_to(self, suffix: str) -> list[tuple[str, str, str | None]]:
        return [call for call in self.calls if call[1].endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append((request.method, path, request.headers.get("Authorization")))

        if path.endswith("/auth/refresh"):
            return self._refresh(request)

        if self.request_error is not None:
            raise self.request_error

        if path.endswith("/auth/login"):
            return httpx.Response(401, json={"success": False, "message": "Invalid credentials"})

        authorization = request.headers.get("Authorization", "")
        if self.reject_all or authorization != f"Bearer {self.access_token}":
            return httpx.Response(401, json={"success": False, "message": "Invalid or expired token"})

        if "/status/" in path:
            status_code = int(path.rsplit("/", 1)[1])
            return httpx.Response(status_code, json={"success": False, "message": "status"})

        if path.endswith("/users/me"):
            return httpx.Response(200, json={"_id": "u1", "name": "A", "email": "a@x.com", "username": "a"})

        return httpx.Response(200, json={"success": True})

    def _refresh(self, request: httpx.Request) -> httpx.Response:
        if self.refresh_error is not None:
            raise self.refresh_error
        if self.refresh_status is not None:
            return httpx.Response(self.refresh_status, json={"success": False, "message": "forced"})

        body = json.loads(request.content)
        if body.get("refreshToken") != self.refresh_token:
            return httpx.Response(401, json={"success": False, "message": "Invalid refresh token"})

        self.generation += 1
        self.access_token = f"access-{self.generation}"
        self.refresh_token = f"refresh-{self.generation}"
        return httpx.Response(
            200,
            json={"success": True, "accessToken": self.access_token, "refreshToken": self.refresh_token},
        )
