import json
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Optional, Type, TypeVar
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from .config import Settings
from .errors import TransportError
from .models import (
    RatingResponse,
    RatingSubmission,
    RecommendationRequest,
    RecommendationResponse,
)

logger = logging.getLogger(__name__)

ResponseModel = TypeVar("ResponseModel", bound=BaseModel)


def _segment(value: str) -> str:
    return quote(value, safe="")


class BookRecommenderClient:
    """Async client for the rating and recommendation endpoints.

    Each call opens its own ``httpx.AsyncClient`` unless one was injected or
    the client is used as ``async with BookRecommenderClient(settings) as c``,
    in which case that one connection pool is shared by every call. An
    injected client is owned and closed by the caller.
    Connection failures and unreadable bodies raise ``TransportError``; a
    server that answers ``success: false`` is returned as a normal response.
    """

    def __init__(self, settings: Optional[Settings] = None, http: Optional[httpx.AsyncClient] = None):
        self.settings = settings or Settings()
        self.base_url = self.settings.server_url.rstrip("/")
        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "User-Agent": "BookRecommenderClient/1.0",
        }
        self._http = http
        self._owns_http = False
        self.raw_dir: Optional[Path] = self.settings.raw_dir
        if self.raw_dir:
            self.raw_dir.mkdir(parents=True, exist_ok=True)

    async def __aenter__(self) -> "BookRecommenderClient":
        if self._http is None:
            self._http = httpx.AsyncClient(headers=self.headers, timeout=self.settings.timeout)
            self._owns_http = True
        return self

    async def __aexit__(self, *exc_info):
        if self._owns_http:
            await self._http.aclose()
            self._http = None
            self._owns_http = False

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(headers=self.headers, timeout=self.settings.timeout) as client:
            yield client

    def _save_raw(self, name: str, data: Any):
        if not self.raw_dir:
            return
        path = self.raw_dir / f"{name}.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    async def _request(
        self,
        method: str,
        path: str,
        model: Type[ResponseModel],
        body: Optional[Dict[str, Any]] = None,
        not_found: Optional[str] = None,
    ) -> ResponseModel:
        url = f"{self.base_url}{path}"
        async with self._client() as client:
            try:
                resp = await client.request(method, url, json=body)
            except httpx.HTTPError as e:
                raise TransportError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %d", method, path, resp.status_code)

        if resp.status_code == 404 and not_found:
            return model(success=False, message=not_found)

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.is_success:
            if not isinstance(data, dict):
                raise TransportError(f"{method} {path} returned an unreadable body")
            self._save_raw(path.strip("/").replace("/", "_"), data)
            try:
                return model.model_validate(data)
            except ValueError as e:
                raise TransportError(f"{method} {path} returned an unexpected body: {e}") from e

        # Rejections usually come back as a regular response body with success=false.
        if isinstance(data, dict) and "success" in data:
            try:
                return model.model_validate(data)
            except ValueError:
                pass
        logger.warning("%s %s failed with status %d", method, path, resp.status_code)
        return model(success=False, message=f"Server error: {resp.status_code}")

    # Ratings

    async def submit_rating(self, submission: RatingSubmission) -> RatingResponse:
        return await self._request("POST", "/ratings/add", RatingResponse, body=submission.to_payload())

    async def get_user_rating(self, username: str, isbn: str) -> RatingResponse:
        path = f"/ratings/user/{_segment(username)}/book/{_segment(isbn)}"
        return await self._request("GET", path, RatingResponse)

    async def get_user_ratings(self, username: str) -> RatingResponse:
        return await self._request("GET", f"/ratings/user/{_segment(username)}", RatingResponse)

    async def get_book_ratings(self, isbn: str) -> RatingResponse:
        return await self._request("GET", f"/ratings/book/{_segment(isbn)}", RatingResponse)

    async def get_book_statistics(self, isbn: str) -> RatingResponse:
        return await self._request("GET", f"/ratings/book/{_segment(isbn)}/statistics", RatingResponse)

    async def delete_rating(self, username: str, isbn: str) -> RatingResponse:
        path = f"/ratings/user/{_segment(username)}/book/{_segment(isbn)}"
        return await self._request("DELETE", path, RatingResponse, not_found="Rating not found")

    async def health(self) -> RatingResponse:
        return await self._request("GET", "/ratings/health", RatingResponse)

    # Recommendations

    async def fetch_recommendation_permission(self, username: str, target_isbn: str) -> RecommendationResponse:
        path = f"/recommendations/can-recommend/{_segment(username)}/{_segment(target_isbn)}"
        return await self._request("GET", path, RecommendationResponse)

    async def submit_recommendation(
        self, username: str, target_isbn: str, candidate_isbn: str, reason: Optional[str] = None
    ) -> RecommendationResponse:
        request = RecommendationRequest(
            username=username,
            target_book_isbn=target_isbn,
            recommended_book_isbn=candidate_isbn,
            reason=reason,
        )
        errors = request.validation_errors()
        if errors:
            return RecommendationResponse(success=False, message="; ".join(errors))
        return await self._request("POST", "/recommendations/add", RecommendationResponse, body=request.to_payload())

    async def fetch_existing_recommendations(self, username: str, target_isbn: str) -> RecommendationResponse:
        path = f"/recommendations/user/{_segment(username)}/book/{_segment(target_isbn)}"
        return await self._request("GET", path, RecommendationResponse)

    async def get_book_recommendations(self, isbn: str) -> RecommendationResponse:
        return await self._request("GET", f"/recommendations/book/{_segment(isbn)}", RecommendationResponse)

    async def remove_recommendation(self, request: RecommendationRequest) -> RecommendationResponse:
        return await self._request(
            "DELETE",
            "/recommendations/remove",
            RecommendationResponse,
            body=request.to_payload(),
            not_found="Recommendation not found",
        )
