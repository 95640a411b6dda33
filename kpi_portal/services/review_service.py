"""
Review Service Layer

Business logic for the KPI review lifecycle. Routers stay focused on HTTP;
everything that reads or writes KPIs, reviews and ratings goes through here.

Architecture:
- Router -> ReviewService (this module) -> Models
- Transition guards come from ReviewStateMachine
- Scores come from the rating aggregator; existing ratings are read through
  the item rating parser so legacy rows keep working
- Writes always produce structured KPIItemRating rows
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from kpi_portal.core.exceptions import NotFoundError
from kpi_portal.models.accomplishment import Accomplishment
from kpi_portal.models.department import DepartmentFeatures
from kpi_portal.models.item_rating import KPIItemRating, RaterRole, RatingKind
from kpi_portal.models.kpi import KPI, KPIItem, KPIStatus
from kpi_portal.models.kpi_review import ConfirmationStatus, KPIReview, RejectionResolution, ReviewStatus
from kpi_portal.models.rating_option import RatingOption
from kpi_portal.schemas.kpi import DepartmentFeaturesResponse, KPICreate
from kpi_portal.schemas.review import (
    ConfirmationSubmission,
    ManagerReviewSubmission,
    ResolveRejectionRequest,
    ReviewSummaryResponse,
    SelfRatingSubmission,
)
from kpi_portal.services.accomplishments import AccomplishmentRecord, AccomplishmentSet
from kpi_portal.services.base import BaseService
from kpi_portal.services.item_rating_parser import ParsedItemRatings, parse_item_ratings
from kpi_portal.services.rating_aggregator import (
    LEGACY_ITEM_ID,
    ItemScore,
    RatingSummary,
    aggregate,
    build_item_scores,
    resolve_policy,
    self_rating_enabled,
)
from kpi_portal.services.rating_catalog import (
    DEFAULT_OPTIONS,
    QUALITATIVE_TYPE,
    QUANTITATIVE_TYPES,
    RatingCatalog,
    RatingChoice,
    rating_percentage,
)
from kpi_portal.services.review_state_machine import ReviewStateMachine


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService(BaseService):
    def __init__(self, db: Session, state_machine: Optional[ReviewStateMachine] = None):
        super().__init__(db)
        self.machine = state_machine or ReviewStateMachine()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_kpi(self, kpi_id: int) -> KPI:
        kpi = self.db.query(KPI).filter(KPI.id == kpi_id).first()
        if not kpi:
            raise NotFoundError(f"KPI {kpi_id} not found")
        return kpi

    def get_review(self, review_id: int) -> KPIReview:
        review = self.db.query(KPIReview).filter(KPIReview.id == review_id).first()
        if not review:
            raise NotFoundError(f"Review {review_id} not found")
        return review

    def get_review_by_kpi(self, kpi_id: int) -> Optional[KPIReview]:
        self.get_kpi(kpi_id)
        return self.db.query(KPIReview).filter(KPIReview.kpi_id == kpi_id).first()

    def list_item_ratings(self, review_id: int) -> List[KPIItemRating]:
        self.get_review(review_id)
        return (
            self.db.query(KPIItemRating)
            .filter(KPIItemRating.review_id == review_id)
            .order_by(KPIItemRating.rater_role, KPIItemRating.kpi_item_id)
            .all()
        )

    def catalog(self) -> RatingCatalog:
        return RatingCatalog(self.db.query(RatingOption).all())

    def rating_options(self, period: Optional[str] = None) -> List[RatingChoice]:
        catalog = self.catalog()
        if period in QUANTITATIVE_TYPES:
            return catalog.quantitative(period)
        if period == QUALITATIVE_TYPE:
            return catalog.qualitative()
        return catalog.options

    def seed_rating_options(self) -> int:
        """Insert the default rating scale when no options are configured."""
        if self.db.query(RatingOption).count() > 0:
            return 0
        for option in DEFAULT_OPTIONS:
            self.db.add(RatingOption(**option.model_dump()))
        self.commit()
        self.log_info(f"Seeded {len(DEFAULT_OPTIONS)} rating options")
        return len(DEFAULT_OPTIONS)

    def department_features(self, kpi: KPI) -> Optional[DepartmentFeatures]:
        if kpi.department_id is None:
            return None
        return (
            self.db.query(DepartmentFeatures)
            .filter(DepartmentFeatures.department_id == kpi.department_id)
            .first()
        )

    def features_for_kpi(self, kpi_id: int) -> DepartmentFeaturesResponse:
        kpi = self.get_kpi(kpi_id)
        features = self.department_features(kpi)
        if features is None:
            return DepartmentFeaturesResponse(department_id=kpi.department_id, is_default=True)
        return DepartmentFeaturesResponse.model_validate(features)

    # ------------------------------------------------------------------
    # KPI setting and acknowledgement
    # ------------------------------------------------------------------
    def create_kpi(self, payload: KPICreate) -> KPI:
        kpi = KPI(
            employee_id=payload.employee_id,
            manager_id=payload.manager_id,
            department_id=payload.department_id,
            title=payload.title,
            description=payload.description,
            target_value=payload.target_value,
            measure_unit=payload.measure_unit,
            period=payload.period,
            quarter=payload.quarter,
            year=payload.year,
            status=KPIStatus.PENDING.value,
            manager_signature=payload.manager_signature,
            manager_signed_at=_now() if payload.manager_signature else None,
        )
        for order, item in enumerate(payload.items, start=1):
            kpi.items.append(KPIItem(item_order=order, **item.model_dump()))
        self.db.add(kpi)
        self.commit()
        self.db.refresh(kpi)
        self.log_info(f"Created KPI {kpi.id} with {len(payload.items)} item(s)", kpi_id=kpi.id)
        return kpi

    def acknowledge(self, kpi_id: int, signature: Optional[str]) -> KPI:
        kpi = self.get_kpi(kpi_id)
        outcome = self.machine.acknowledge_kpi(kpi.status, signature).raise_for_error()

        kpi.status = outcome.to_state
        kpi.employee_signature = signature
        kpi.employee_signed_at = _now()
        if kpi.review is None:
            self.db.add(self._new_review(kpi))
        self.commit()
        self.db.refresh(kpi)
        self.log_info(f"KPI {kpi.id} acknowledged", kpi_id=kpi.id)
        return kpi

    def _new_review(self, kpi: KPI) -> KPIReview:
        return KPIReview(
            kpi_id=kpi.id,
            employee_id=kpi.employee_id,
            manager_id=kpi.manager_id,
            review_status=ReviewStatus.PENDING.value,
            review_period=kpi.period,
            review_quarter=kpi.quarter,
            review_year=kpi.year,
        )

    # ------------------------------------------------------------------
    # Self-rating
    # ------------------------------------------------------------------
    def submit_self_rating(self, kpi_id: int, submission: SelfRatingSubmission) -> KPIReview:
        kpi = self.get_kpi(kpi_id)
        review = kpi.review
        current = review.review_status if review else ReviewStatus.NONE.value
        features = self.department_features(kpi)

        ratings = {entry.item_id: entry.rating for entry in submission.items}
        comments = {entry.item_id: entry.comment for entry in submission.items}
        items = build_item_scores(kpi.items, ratings)
        accomplishments = AccomplishmentSet([
            AccomplishmentRecord(item_order=order, **entry.model_dump())
            for order, entry in enumerate(submission.accomplishments, start=1)
        ])

        outcome = self.machine.submit_self_rating(
            current,
            items,
            accomplishments,
            submission.employee_signature,
            submission.review_date,
            kpi_status=kpi.status,
            self_rating_enabled=self_rating_enabled(features, kpi.period),
        ).raise_for_error()

        if review is None:
            review = self._new_review(kpi)
            self.db.add(review)

        catalog = self.catalog()
        max_rating = catalog.max_rating(kpi.period)
        self._write_ratings(review, kpi, RaterRole.EMPLOYEE, items, comments, max_rating)

        review.accomplishments = [
            Accomplishment(
                title=record.title,
                description=record.description,
                employee_rating=record.employee_rating,
                employee_comment=record.employee_comment,
                item_order=record.item_order,
            )
            for record in accomplishments
        ]

        summary = aggregate(items, accomplishments.rated("employee"), max_rating, resolve_policy(features, kpi.period))
        review.employee_rating = summary.average_rating
        review.employee_final_rating = summary.final_rating
        review.employee_rating_percentage = summary.percentage

        review.major_accomplishments = submission.major_accomplishments
        review.disappointments = submission.disappointments
        review.improvement_needed = submission.improvement_needed
        review.future_plan = submission.future_plan

        review.employee_signature = submission.employee_signature
        review.employee_self_rating_date = submission.review_date
        review.employee_self_rating_signed_at = _now()
        review.review_status = outcome.to_state

        self.commit()
        self.db.refresh(review)
        self.log_info(
            f"Self-rating submitted for KPI {kpi.id}: {summary.percentage:.2f}% ({summary.policy.value})",
            kpi_id=kpi.id, review_id=review.id,
        )
        return review

    # ------------------------------------------------------------------
    # Manager review
    # ------------------------------------------------------------------
    def submit_manager_review(self, review_id: int, submission: ManagerReviewSubmission) -> KPIReview:
        review = self.get_review(review_id)
        kpi = review.kpi
        features = self.department_features(kpi)

        actuals = {entry.item_id: entry for entry in submission.items}
        ratings = {entry.item_id: entry.rating for entry in submission.items}
        comments = {entry.item_id: entry.comment for entry in submission.items}
        qualitative = {entry.item_id: entry.rating for entry in submission.qualitative_ratings}
        comments.update({entry.item_id: entry.comment for entry in submission.qualitative_ratings})
        items = build_item_scores([self._item_view(item, actuals.get(item.id)) for item in kpi.items], ratings)

        outcome = self.machine.submit_manager_review(
            review.review_status,
            items,
            qualitative,
            submission.manager_signature,
            self_rating_enabled=self_rating_enabled(features, kpi.period),
        ).raise_for_error()

        for item in kpi.items:
            entry = actuals.get(item.id)
            if entry is None:
                continue
            if entry.actual_value is not None:
                item.actual_value = entry.actual_value
            if entry.current_performance_status is not None:
                item.current_performance_status = entry.current_performance_status

        max_rating = self.catalog().max_rating(kpi.period)
        self._write_ratings(review, kpi, RaterRole.MANAGER, items, comments, max_rating, qualitative)

        by_order = {entry.item_order: entry for entry in submission.accomplishments}
        for accomplishment in review.accomplishments:
            entry = by_order.get(accomplishment.item_order)
            if entry is None:
                continue
            accomplishment.manager_rating = entry.manager_rating
            accomplishment.manager_comment = entry.manager_comment

        accomplishments = AccomplishmentSet(review.accomplishments, minimum=0)
        summary = aggregate(items, accomplishments.rated("manager"), max_rating, resolve_policy(features, kpi.period))
        review.manager_rating = summary.average_rating
        review.manager_final_rating = summary.final_rating
        review.manager_final_rating_percentage = summary.percentage

        review.overall_manager_comment = submission.overall_manager_comment
        review.major_accomplishments_manager_comment = submission.major_accomplishments_manager_comment
        review.disappointments_manager_comment = submission.disappointments_manager_comment
        review.improvement_needed_manager_comment = submission.improvement_needed_manager_comment
        review.manager_signature = submission.manager_signature
        review.manager_review_signed_at = _now()
        review.review_status = outcome.to_state

        self.commit()
        self.db.refresh(review)
        self.log_info(
            f"Manager review submitted for review {review.id}: {summary.percentage:.2f}%",
            review_id=review.id,
        )
        return review

    @staticmethod
    def _item_view(item: KPIItem, entry: Any = None) -> Dict[str, Any]:
        """Item fields as scored, with the actual value the manager is submitting."""
        actual = item.actual_value
        if entry is not None and entry.actual_value is not None:
            actual = entry.actual_value
        return {
            "id": item.id,
            "title": item.title,
            "goal_weight": item.goal_weight,
            "is_qualitative": item.is_qualitative,
            "exclude_from_calculation": item.exclude_from_calculation,
            "actual_value": actual,
            "target_value": item.target_value,
        }

    def _write_ratings(
        self,
        review: KPIReview,
        kpi: KPI,
        role: RaterRole,
        items: List[ItemScore],
        comments: Dict[int, str],
        max_rating: float,
        qualitative: Optional[Dict[int, Any]] = None,
    ) -> None:
        """Upsert one KPIItemRating row per item for ``role``."""
        existing = {
            row.kpi_item_id: row for row in review.ratings if row.rater_role == role.value
        }
        items_by_id = {item.id: item for item in kpi.items}
        for score in items:
            item = items_by_id.get(score.item_id)
            if score.is_qualitative:
                value = (qualitative or {}).get(score.item_id)
                rating = None if value is None else str(value)
                kind = RatingKind.QUALITATIVE.value
                percentage = None
            else:
                rating = str(score.rating) if score.rating > 0 else None
                kind = RatingKind.QUANTITATIVE.value
                percentage = rating_percentage(score.rating, max_rating) if score.rating > 0 else None

            row = existing.get(score.item_id)
            if row is None:
                row = KPIItemRating(kpi_item_id=score.item_id, rater_role=role.value)
                review.ratings.append(row)
            row.rating_type = kind
            row.rating = rating
            row.comment = comments.get(score.item_id) or None
            row.percentage_value_obtained = percentage
            if score.item_id == LEGACY_ITEM_ID or item is None:
                row.target_value = kpi.target_value
            else:
                row.target_value = item.target_value
                row.goal_weight = item.goal_weight
                row.actual_value = item.actual_value

    # ------------------------------------------------------------------
    # Employee confirmation and HR resolution
    # ------------------------------------------------------------------
    def confirm(self, review_id: int, submission: ConfirmationSubmission) -> KPIReview:
        review = self.get_review(review_id)

        if submission.confirmation_status == ConfirmationStatus.APPROVED.value:
            outcome = self.machine.approve(review.review_status, submission.signature).raise_for_error()
            review.confirmation_status = ConfirmationStatus.APPROVED.value
            review.confirmation_signature = submission.signature
            review.confirmation_signed_at = _now()
            review.meeting_confirmed = submission.meeting_confirmed
            review.meeting_location = submission.meeting_location
            review.meeting_date = submission.meeting_date
            review.meeting_time = submission.meeting_time
            review.no_meeting_acknowledged = submission.no_meeting_acknowledged
            review.kpi.status = KPIStatus.COMPLETED.value
        else:
            outcome = self.machine.reject(review.review_status, submission.rejection_note).raise_for_error()
            review.confirmation_status = ConfirmationStatus.REJECTED.value
            review.employee_rejection_note = submission.rejection_note
            review.rejected_at = _now()
            review.rejection_resolved_status = RejectionResolution.UNRESOLVED.value

        review.review_status = outcome.to_state
        self.commit()
        self.db.refresh(review)
        self.log_info(f"Review {review.id} {submission.confirmation_status} by employee", review_id=review.id)
        return review

    def resolve_rejection(self, review_id: int, request: ResolveRejectionRequest) -> KPIReview:
        review = self.get_review(review_id)
        self.machine.resolve_rejection(review.review_status, review.rejection_resolved_status).raise_for_error()

        review.rejection_resolved_status = RejectionResolution.RESOLVED.value
        review.rejection_resolved_note = request.note
        review.rejection_resolved_by = request.resolved_by
        review.rejection_resolved_at = _now()
        self.commit()
        self.db.refresh(review)
        self.log_info(f"Rejection on review {review.id} resolved", review_id=review.id)
        return review

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------
    def summarize(self, review_id: int) -> ReviewSummaryResponse:
        review = self.get_review(review_id)
        kpi = review.kpi
        features = self.department_features(kpi)
        policy = resolve_policy(features, kpi.period)
        max_rating = self.catalog().max_rating(kpi.period)

        parsed: ParsedItemRatings = parse_item_ratings(review)
        accomplishments = AccomplishmentSet(review.accomplishments, minimum=0)

        def _summary(role: str, ratings: Dict[int, float]) -> RatingSummary:
            items = build_item_scores(kpi.items, ratings)
            return aggregate(items, accomplishments.rated(role), max_rating, policy)

        return ReviewSummaryResponse(
            review_id=review.id,
            kpi_id=kpi.id,
            review_status=review.review_status,
            max_rating=max_rating,
            employee=_summary("employee", parsed.employee_item_ratings),
            manager=_summary("manager", parsed.manager_item_ratings),
            ratings=parsed,
        )
