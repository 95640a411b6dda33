"""
Client-side review flow for one KPI.

Loads the KPI, its review, the rating scale and department features through
ReviewServiceClient, keeps the employee's in-progress ratings, shows a live
summary, and submits through the state machine guards. Feedback goes to the
injected Notifier; a failed submission leaves local state as it was.
"""
import asyncio
import logging
from datetime import date
from typing import Dict, List, Optional

from kpi_portal.core.exceptions import SupersededRequestError, TransportError
from kpi_portal.models.kpi_review import ReviewStatus
from kpi_portal.schemas.kpi import DepartmentFeaturesResponse, KPIResponse
from kpi_portal.schemas.review import (
    AccomplishmentInput,
    ConfirmationSubmission,
    ItemRatingInput,
    ReviewResponse,
    SelfRatingSubmission,
)
from kpi_portal.services.accomplishments import AccomplishmentRecord, AccomplishmentSet
from kpi_portal.services.draft_store import DraftStore, FileDraftBackend, SelfRatingDraft
from kpi_portal.services.item_rating_parser import ParsedItemRatings, parse_item_ratings, parse_reflections
from kpi_portal.services.notifier import Notifier
from kpi_portal.services.rating_aggregator import (
    ItemScore,
    RatingSummary,
    aggregate,
    build_item_scores,
    resolve_policy,
    self_rating_enabled,
)
from kpi_portal.services.rating_catalog import RatingCatalog
from kpi_portal.services.review_client import ReviewServiceClient
from kpi_portal.services.review_state_machine import MeetingRecord, ReviewStateMachine, confirm_no_meeting

logger = logging.getLogger(__name__)

REFLECTION_FIELDS = ("major_accomplishments", "disappointments", "improvement_needed", "future_plan")


class ReviewSession:
    def __init__(
        self,
        client: ReviewServiceClient,
        kpi_id: int,
        notifier: Optional[Notifier] = None,
        drafts: Optional[DraftStore] = None,
        state_machine: Optional[ReviewStateMachine] = None,
    ):
        self.client = client
        self.kpi_id = kpi_id
        self.notifier = notifier or Notifier()
        self.drafts = drafts or DraftStore(FileDraftBackend())
        self.machine = state_machine or ReviewStateMachine()

        self.kpi: Optional[KPIResponse] = None
        self.review: Optional[ReviewResponse] = None
        self.catalog = RatingCatalog()
        self.features: Optional[DepartmentFeaturesResponse] = None
        self.parsed = ParsedItemRatings()

        self.ratings: Dict[int, float] = {}
        self.comments: Dict[int, str] = {}
        self.signature = ""
        self.review_date: Optional[date] = None
        self.reflections: Dict[str, str] = {}
        self.accomplishments = AccomplishmentSet()

    @property
    def period(self) -> str:
        return self.kpi.period if self.kpi else "quarterly"

    @property
    def review_status(self) -> str:
        return self.review.review_status if self.review else ReviewStatus.NONE.value

    @property
    def is_editable(self) -> bool:
        return self.review_status in (ReviewStatus.NONE.value, ReviewStatus.PENDING.value)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------
    async def load(self) -> bool:
        """Fetch everything the review screen needs. False when loading failed or was superseded."""
        try:
            kpi, review, options, features = await asyncio.gather(
                self.client.fetch_kpi(self.kpi_id),
                self.client.fetch_review_by_kpi(self.kpi_id),
                self.client.fetch_rating_options(),
                self.client.fetch_department_features(self.kpi_id),
            )
        except SupersededRequestError as e:
            logger.debug(f"Load of KPI {self.kpi_id} dropped: {e}")
            return False
        except TransportError as e:
            self.notifier.error(e.message)
            return False

        self.kpi = kpi
        self.review = review
        self.catalog = RatingCatalog(options)
        self.features = features
        self._apply_review(review)

        if self.is_editable and self.restore_draft():
            self.notifier.info("Restored your unsaved self-rating draft")
        return True

    def _apply_review(self, review: Optional[ReviewResponse]) -> None:
        self.parsed = parse_item_ratings(review) if review else ParsedItemRatings()
        self.ratings = dict(self.parsed.employee_item_ratings)
        self.comments = dict(self.parsed.employee_item_comments)
        self.reflections = {name: "" for name in REFLECTION_FIELDS}
        if review is None:
            self.accomplishments = AccomplishmentSet()
            return
        self.reflections.update(parse_reflections(review))
        for name in ("improvement_needed", "future_plan"):
            self.reflections[name] = getattr(review, name) or ""
        self.signature = review.employee_signature or ""
        self.review_date = review.employee_self_rating_date
        self.accomplishments = AccomplishmentSet(review.accomplishments)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def set_rating(self, item_id: int, value: float) -> None:
        self.ratings[item_id] = value

    def set_comment(self, item_id: int, text: str) -> None:
        self.comments[item_id] = text

    def add_accomplishment(self, **fields) -> AccomplishmentRecord:
        return self.accomplishments.add(**fields)

    def update_accomplishment(self, index: int, **fields) -> AccomplishmentRecord:
        return self.accomplishments.update(index, **fields)

    def remove_accomplishment(self, index: int) -> bool:
        removed = self.accomplishments.remove(index)
        if not removed:
            self.notifier.warning(
                f"At least {self.accomplishments.minimum} accomplishments are required"
            )
        return removed

    def item_scores(self) -> List[ItemScore]:
        return build_item_scores(self.kpi.items if self.kpi else [], self.ratings)

    def summary(self) -> RatingSummary:
        """Live employee summary for the current edits."""
        return aggregate(
            self.item_scores(),
            self.accomplishments.rated("employee"),
            self.catalog.max_rating(self.period),
            resolve_policy(self.features, self.period),
        )

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------
    def save_draft(self) -> bool:
        draft = SelfRatingDraft(
            ratings=self.ratings,
            comments=self.comments,
            signature=self.signature,
            review_date=self.review_date,
            reflections=self.reflections,
            accomplishments=self.accomplishments.records,
        )
        try:
            self.drafts.save(self.kpi_id, draft)
        except OSError as e:
            logger.warning(f"Could not save draft for KPI {self.kpi_id}: {e}")
            self.notifier.warning("Your draft could not be saved")
            return False
        return True

    def restore_draft(self) -> bool:
        draft = self.drafts.load(self.kpi_id)
        if draft is None:
            return False
        self.ratings = dict(draft.ratings)
        self.comments = dict(draft.comments)
        self.signature = draft.signature
        self.review_date = draft.review_date
        self.reflections.update(draft.reflections)
        if draft.accomplishments:
            self.accomplishments = AccomplishmentSet(draft.accomplishments)
        return True

    def clear_draft(self) -> None:
        self.drafts.clear(self.kpi_id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def acknowledge(self, signature: str) -> bool:
        if self.kpi is None:
            return False
        outcome = self.machine.acknowledge_kpi(self.kpi.status, signature)
        if not outcome.ok:
            self.notifier.error(outcome.error.message)
            return False
        try:
            self.kpi = await self.client.acknowledge_kpi(self.kpi_id, signature)
        except TransportError as e:
            self.notifier.error(e.message)
            return False
        self.notifier.success("KPI acknowledged")
        return True

    async def submit_self_rating(self) -> bool:
        if self.kpi is None:
            return False
        outcome = self.machine.submit_self_rating(
            self.review_status,
            self.item_scores(),
            self.accomplishments,
            self.signature,
            self.review_date,
            kpi_status=self.kpi.status,
            self_rating_enabled=self_rating_enabled(self.features, self.period),
        )
        if not outcome.ok:
            self.notifier.error(outcome.error.message)
            return False

        payload = SelfRatingSubmission(
            items=[
                ItemRatingInput(item_id=score.item_id, rating=score.rating, comment=self.comments.get(score.item_id, ""))
                for score in self.item_scores()
            ],
            accomplishments=[
                AccomplishmentInput(
                    title=record.title,
                    description=record.description,
                    employee_rating=record.employee_rating,
                    employee_comment=record.employee_comment,
                )
                for record in self.accomplishments
            ],
            employee_signature=self.signature,
            review_date=self.review_date,
            **{name: self.reflections.get(name) or None for name in REFLECTION_FIELDS},
        )
        try:
            review = await self.client.submit_self_rating(self.kpi_id, payload)
        except TransportError as e:
            self.notifier.error(e.message)
            return False

        self.review = review
        self.clear_draft()
        self.notifier.success("Self-rating submitted")
        return True

    async def approve(self, signature: str, meeting: Optional[MeetingRecord] = None) -> bool:
        """Employee accepts the manager's review. Returns False if the no-meeting prompt is cancelled."""
        if self.review is None:
            return False
        outcome = self.machine.approve(self.review_status, signature)
        if not outcome.ok:
            self.notifier.error(outcome.error.message)
            return False
        meeting = meeting or MeetingRecord()
        if not confirm_no_meeting(meeting, self.notifier.confirm):
            return False

        payload = ConfirmationSubmission(
            confirmation_status="approved",
            signature=signature,
            **meeting.model_dump(),
        )
        return await self._confirm(payload, "Review approved")

    async def reject(self, note: str) -> bool:
        if self.review is None:
            return False
        outcome = self.machine.reject(self.review_status, note)
        if not outcome.ok:
            self.notifier.error(outcome.error.message)
            return False
        payload = ConfirmationSubmission(confirmation_status="rejected", rejection_note=note)
        return await self._confirm(payload, "Review rejected; HR has been notified")

    async def _confirm(self, payload: ConfirmationSubmission, message: str) -> bool:
        try:
            self.review = await self.client.confirm_review(self.review.id, payload)
        except TransportError as e:
            self.notifier.error(e.message)
            return False
        self.notifier.success(message)
        return True
