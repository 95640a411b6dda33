"""
Review lifecycle.

KPI:    pending -> acknowledged (-> completed once its review completes)
Review: none/pending -> employee_submitted -> awaiting_employee_confirmation
        -> completed | rejected, and a rejected review can be resolved by HR.

Every method returns a TransitionOutcome. A guard failure carries a
ReviewValidationError and leaves the state where it was; an event that is not
allowed from the current state carries an InvalidTransitionError.
"""
import enum
import logging
from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from kpi_portal.core.exceptions import AppException, InvalidTransitionError, ReviewValidationError
from kpi_portal.models.kpi import KPIStatus
from kpi_portal.models.kpi_review import ReviewStatus, RejectionResolution
from kpi_portal.services.accomplishments import AccomplishmentSet
from kpi_portal.services.rating_aggregator import ItemScore, validate_manager_review, validate_self_rating

logger = logging.getLogger(__name__)

NO_MEETING_PROMPT = (
    "You indicated that no physical meeting took place with your manager. "
    "HR will be able to see this. Do you want to continue?"
)


class ReviewEvent(str, enum.Enum):
    ACKNOWLEDGE = "acknowledge"
    SUBMIT_SELF_RATING = "submit_self_rating"
    SUBMIT_MANAGER_REVIEW = "submit_manager_review"
    APPROVE = "approve"
    REJECT = "reject"
    RESOLVE_REJECTION = "resolve_rejection"


_CONFIRMABLE = (ReviewStatus.MANAGER_SUBMITTED.value, ReviewStatus.AWAITING_EMPLOYEE_CONFIRMATION.value)

# event -> (states it may fire from, state it leads to)
TRANSITIONS: Dict[ReviewEvent, Tuple[Tuple[str, ...], str]] = {
    ReviewEvent.ACKNOWLEDGE: ((KPIStatus.PENDING.value,), KPIStatus.ACKNOWLEDGED.value),
    ReviewEvent.SUBMIT_SELF_RATING: (
        (ReviewStatus.NONE.value, ReviewStatus.PENDING.value),
        ReviewStatus.EMPLOYEE_SUBMITTED.value,
    ),
    ReviewEvent.SUBMIT_MANAGER_REVIEW: (
        (ReviewStatus.EMPLOYEE_SUBMITTED.value,),
        ReviewStatus.AWAITING_EMPLOYEE_CONFIRMATION.value,
    ),
    ReviewEvent.APPROVE: (_CONFIRMABLE, ReviewStatus.COMPLETED.value),
    ReviewEvent.REJECT: (_CONFIRMABLE, ReviewStatus.REJECTED.value),
    # Resolution is a sub-state of rejected; the review status itself stays put
    ReviewEvent.RESOLVE_REJECTION: ((ReviewStatus.REJECTED.value,), ReviewStatus.REJECTED.value),
}


class TransitionOutcome(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    event: ReviewEvent
    from_state: str
    to_state: str
    error: Optional[AppException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> "TransitionOutcome":
        if self.error is not None:
            raise self.error
        return self


class MeetingRecord(BaseModel):
    """Physical meeting declared by the employee when approving a review."""
    meeting_confirmed: Optional[bool] = None
    meeting_location: Optional[str] = None
    meeting_date: Optional[date] = None
    meeting_time: Optional[str] = None
    no_meeting_acknowledged: bool = False


def confirm_no_meeting(meeting: Optional[MeetingRecord], prompt: Callable[[str], bool]) -> bool:
    """
    Ask for the extra confirmation needed when the employee says no meeting happened.

    Returns False when the prompt is cancelled; the caller must then stop
    before approving. Marks the record so HR can see the declaration.
    """
    if meeting is None or meeting.meeting_confirmed is not False:
        return True
    if not prompt(NO_MEETING_PROMPT):
        return False
    meeting.no_meeting_acknowledged = True
    return True


def _state(value: Any) -> str:
    if value is None:
        return ReviewStatus.NONE.value
    return value.value if isinstance(value, enum.Enum) else str(value)


class ReviewStateMachine:
    """Guards and target states for every review event."""

    def allowed_events(self, state: Any) -> List[ReviewEvent]:
        current = _state(state)
        return [event for event, (sources, _) in TRANSITIONS.items() if current in sources]

    def can(self, event: ReviewEvent, state: Any) -> bool:
        return _state(state) in TRANSITIONS[event][0]

    def fire(self, event: ReviewEvent, state: Any, guard_error: Optional[AppException] = None) -> TransitionOutcome:
        current = _state(state)
        sources, target = TRANSITIONS[event]
        if current not in sources:
            logger.info("Rejected %s from state %s", event.value, current)
            return TransitionOutcome(
                event=event, from_state=current, to_state=current,
                error=InvalidTransitionError(event.value, current),
            )
        if guard_error is not None:
            return TransitionOutcome(event=event, from_state=current, to_state=current, error=guard_error)
        return TransitionOutcome(event=event, from_state=current, to_state=target)

    def acknowledge_kpi(self, kpi_status: Any, signature: Optional[str]) -> TransitionOutcome:
        error = None
        if not signature or not signature.strip():
            error = ReviewValidationError("Please provide your signature to acknowledge this KPI", field="signature")
        return self.fire(ReviewEvent.ACKNOWLEDGE, kpi_status, error)

    def submit_self_rating(
        self,
        review_status: Any,
        items: Sequence[ItemScore],
        accomplishments: AccomplishmentSet,
        signature: Optional[str],
        review_date: Optional[date],
        kpi_status: Any = KPIStatus.ACKNOWLEDGED,
        self_rating_enabled: bool = True,
    ) -> TransitionOutcome:
        error: Optional[AppException] = None
        if not self_rating_enabled:
            error = ReviewValidationError("Employee self-rating is disabled for this KPI period", field="period")
        elif _state(kpi_status) != KPIStatus.ACKNOWLEDGED.value:
            error = ReviewValidationError("The KPI must be acknowledged before self-rating", field="kpi_status")
        else:
            error = validate_self_rating(items, accomplishments, signature, review_date)
        return self.fire(ReviewEvent.SUBMIT_SELF_RATING, review_status, error)

    def submit_manager_review(
        self,
        review_status: Any,
        items: Sequence[ItemScore],
        qualitative_ratings: Mapping[int, Any],
        signature: Optional[str],
        self_rating_enabled: bool = True,
    ) -> TransitionOutcome:
        current = _state(review_status)
        if not self_rating_enabled and current in (ReviewStatus.NONE.value, ReviewStatus.PENDING.value):
            # Without self-rating the manager opens the review directly
            current = ReviewStatus.EMPLOYEE_SUBMITTED.value
        error = validate_manager_review(items, qualitative_ratings, signature)
        outcome = self.fire(ReviewEvent.SUBMIT_MANAGER_REVIEW, current, error)
        outcome.from_state = _state(review_status)
        if not outcome.ok:
            outcome.to_state = outcome.from_state
        return outcome

    def approve(self, review_status: Any, signature: Optional[str]) -> TransitionOutcome:
        error = None
        if not signature or not signature.strip():
            error = ReviewValidationError("Please provide your signature to approve this review", field="signature")
        return self.fire(ReviewEvent.APPROVE, review_status, error)

    def reject(self, review_status: Any, rejection_note: Optional[str]) -> TransitionOutcome:
        error = None
        if not rejection_note or not rejection_note.strip():
            error = ReviewValidationError("Please provide a reason for rejecting this review", field="rejection_note")
        return self.fire(ReviewEvent.REJECT, review_status, error)

    def resolve_rejection(self, review_status: Any, resolution_status: Any = None) -> TransitionOutcome:
        if _state(resolution_status) == RejectionResolution.RESOLVED.value:
            current = _state(review_status)
            return TransitionOutcome(
                event=ReviewEvent.RESOLVE_REJECTION, from_state=current, to_state=current,
                error=InvalidTransitionError(ReviewEvent.RESOLVE_REJECTION.value, f"{current} (resolved)"),
            )
        return self.fire(ReviewEvent.RESOLVE_REJECTION, review_status)
