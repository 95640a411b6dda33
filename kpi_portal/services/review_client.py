"""
Async HTTP client for the review service API.

Every response is the ``ApiResponse`` envelope; ``data`` is unwrapped and
validated into the same schemas the server renders. Failures of any kind
(network, HTTP status, ``success: false``) raise TransportError carrying the
server's message. Nothing is retried.

Fetches are tracked per resource: starting a new fetch of a resource cancels
the one still in flight, and the superseded caller gets
SupersededRequestError instead of a stale payload.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from kpi_portal.core.config import settings
from kpi_portal.core.exceptions import SupersededRequestError, TransportError
from kpi_portal.schemas.kpi import DepartmentFeaturesResponse, KPIResponse
from kpi_portal.schemas.review import (
    ConfirmationSubmission,
    ItemRatingRow,
    ManagerReviewSubmission,
    ResolveRejectionRequest,
    ReviewResponse,
    ReviewSummaryResponse,
    SelfRatingSubmission,
)
from kpi_portal.services.rating_catalog import RatingChoice

logger = logging.getLogger(__name__)


def _error_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    detail = body.get("detail")
    return detail if isinstance(detail, str) else None


class ReviewServiceClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.review_service.base_url,
            timeout=timeout if timeout is not None else settings.review_service.timeout_seconds,
            transport=transport,
        )
        self._inflight: Dict[str, asyncio.Task] = {}

    async def __aenter__(self) -> "ReviewServiceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        await self._client.aclose()

    async def _request(self, method: str, path: str, json: Any = None, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportError(f"Could not reach the review service: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error or (isinstance(body, dict) and body.get("success") is False):
            message = _error_message(body) or f"Review service returned HTTP {response.status_code}"
            details = body.get("error") if isinstance(body, dict) else None
            logger.info(f"{method} {path} -> {response.status_code}: {message}")
            raise TransportError(message, status_code=response.status_code, details=details)
        if not isinstance(body, dict):
            raise TransportError("Unexpected response from the review service", status_code=response.status_code)
        return body.get("data")

    async def _fetch(self, resource: str, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        previous = self._inflight.get(resource)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.ensure_future(self._request("GET", path, params=params))
        self._inflight[resource] = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._inflight.get(resource) is not task:
                raise SupersededRequestError(resource)
            raise
        finally:
            if self._inflight.get(resource) is task:
                del self._inflight[resource]

    # --- Reads ---

    async def fetch_kpi(self, kpi_id: int) -> KPIResponse:
        return KPIResponse.model_validate(await self._fetch("kpi", f"/kpis/{kpi_id}"))

    async def fetch_review(self, review_id: int) -> ReviewResponse:
        return ReviewResponse.model_validate(await self._fetch("review", f"/kpi-review/{review_id}"))

    async def fetch_review_by_kpi(self, kpi_id: int) -> Optional[ReviewResponse]:
        data = await self._fetch("review", f"/kpi-review/kpi/{kpi_id}")
        return ReviewResponse.model_validate(data) if data else None

    async def fetch_item_ratings(self, review_id: int) -> List[ItemRatingRow]:
        data = await self._fetch("item-ratings", f"/kpi-review/{review_id}/item-ratings")
        return [ItemRatingRow.model_validate(row) for row in data or []]

    async def fetch_summary(self, review_id: int) -> ReviewSummaryResponse:
        return ReviewSummaryResponse.model_validate(await self._fetch("summary", f"/kpi-review/{review_id}/summary"))

    async def fetch_rating_options(self, period: Optional[str] = None) -> List[RatingChoice]:
        params = {"period": period} if period else None
        data = await self._fetch("rating-options", "/rating-options", params=params)
        return [RatingChoice.model_validate(option) for option in data or []]

    async def fetch_department_features(self, kpi_id: int) -> DepartmentFeaturesResponse:
        data = await self._fetch("department-features", f"/department-features/kpi/{kpi_id}")
        return DepartmentFeaturesResponse.model_validate(data)

    # --- Writes ---

    async def acknowledge_kpi(self, kpi_id: int, signature: str) -> KPIResponse:
        data = await self._request("POST", f"/kpis/{kpi_id}/acknowledge", json={"signature": signature})
        return KPIResponse.model_validate(data)

    async def submit_self_rating(self, kpi_id: int, payload: SelfRatingSubmission) -> ReviewResponse:
        data = await self._request("POST", f"/kpi-review/{kpi_id}/self-rating", json=payload.model_dump(mode="json"))
        return ReviewResponse.model_validate(data)

    async def submit_manager_review(self, review_id: int, payload: ManagerReviewSubmission) -> ReviewResponse:
        data = await self._request("POST", f"/kpi-review/{review_id}/manager-review", json=payload.model_dump(mode="json"))
        return ReviewResponse.model_validate(data)

    async def confirm_review(self, review_id: int, payload: ConfirmationSubmission) -> ReviewResponse:
        data = await self._request("POST", f"/kpi-review/{review_id}/confirm", json=payload.model_dump(mode="json"))
        return ReviewResponse.model_validate(data)

    async def resolve_rejection(self, review_id: int, payload: ResolveRejectionRequest) -> ReviewResponse:
        data = await self._request("POST", f"/kpi-review/{review_id}/resolve-rejection", json=payload.model_dump(mode="json"))
        return ReviewResponse.model_validate(data)
