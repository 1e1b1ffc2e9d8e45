"""Async HTTP client for the STEM Play API."""
import logging
from typing import Any, Optional

import httpx

from stemplay.errors import (
    ERRORS_BY_CODE, StemPlayError, TransientNetworkError, ValidationError,
)

logger = logging.getLogger(__name__)


def error_from_response(response: httpx.Response) -> StemPlayError:
    """Map an error response back onto the shared error classes."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    message = body.get("message") or body.get("detail") or response.reason_phrase
    if response.status_code >= 500:
        return TransientNetworkError(str(message), status_code=response.status_code)

    cls = ERRORS_BY_CODE.get(body.get("error"))
    if cls is None and response.status_code == 422:
        cls = ValidationError
    if cls is None:
        return TransientNetworkError(str(message), status_code=response.status_code)
    return cls(str(message), status_code=response.status_code)


class StemPlayClient:
    """
    Thin wrapper over ``httpx.AsyncClient``. Every failure surfaces as a
    StemPlayError subclass; nothing is retried here.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.user_id = user_id
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.user_id:
            headers["X-User-Id"] = self.user_id
        try:
            response = await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransientNetworkError(f"Request failed: {e}") from e

        if response.is_success:
            return response.json()
        raise error_from_response(response)

    async def fetch_quizzes(self) -> list[dict]:
        data = await self._request("GET", "/api/student/quizzes")
        return data["quizzes"]

    async def fetch_quiz(self, quiz_id: str) -> dict:
        return await self._request("GET", f"/api/student/quizzes/{quiz_id}")

    async def submit_attempt(self, quiz_id: str, answers: list[dict]) -> dict:
        return await self._request(
            "POST", f"/api/student/quizzes/{quiz_id}/attempt", json={"answers": answers}
        )

    async def submit_score(
        self, type_: str, ref: str, points: int, meta: Optional[dict] = None
    ) -> dict:
        return await self._request(
            "POST",
            "/api/leaderboard/submit",
            json={"type": type_, "ref": ref, "points": points, "meta": meta},
        )

    async def leaderboard(self, type_: str, ref: str, window: Optional[str] = None) -> dict:
        params = {"type": type_, "ref": ref}
        if window:
            params["window"] = window
        return await self._request("GET", "/api/leaderboard", params=params)

    async def reset_leaderboard(self, type_: str, ref: str) -> dict:
        return await self._request(
            "POST", "/api/leaderboard/reset", json={"type": type_, "ref": ref}
        )
