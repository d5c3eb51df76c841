"""
Mutual reviews after a completed shift.

The hirer who posted a shift and the worker whose bid was accepted may each
review the other once.
"""

import logging

from pydantic import BaseModel

from nepshift.config import Settings, get_settings
from nepshift.database import Database
from nepshift.errors import AuthorizationError, NotFoundError, ValidationError
from nepshift.models import Review, Role, Shift, ShiftStatus, User
from nepshift.shifts import get_shift

logger = logging.getLogger(__name__)


class ReviewEligibility(BaseModel):
    can_review: bool
    subject_id: str | None = None
    reason: str | None = None


class RatingSummary(BaseModel):
    average_rating: float
    total_ratings: int


def _counterpart(shift: Shift, user: User) -> str | None:
    """The other participant of the shift, or None if user took no part."""
    if shift.worker_id is None:
        return None
    if user.id == shift.hirer_id:
        return shift.worker_id
    if user.id == shift.worker_id:
        return shift.hirer_id
    return None


def review_eligibility(db: Database, user: User, shift: Shift) -> ReviewEligibility:
    if shift.status != ShiftStatus.COMPLETED:
        return ReviewEligibility(can_review=False, reason="Shift not completed")
    subject_id = _counterpart(shift, user)
    if subject_id is None:
        return ReviewEligibility(can_review=False, reason="Not part of this shift")
    if db.has_reviewed(shift.id, user.id):
        return ReviewEligibility(can_review=False, reason="Already reviewed")
    return ReviewEligibility(can_review=True, subject_id=subject_id)


def can_review(db: Database, user: User, shift: Shift) -> bool:
    return review_eligibility(db, user, shift).can_review


def _apply_rating(db: Database, subject: User, rating: int) -> RatingSummary:
    subject.rating_sum += rating
    subject.total_ratings += 1
    subject.rating = round(subject.rating_sum / subject.total_ratings, 2)
    db.users.put(subject.id, subject)

    if subject.role == Role.HELPER:
        worker_profile = db.worker_profiles.get(subject.id)
        if worker_profile is not None:
            worker_profile.average_rating = subject.rating
            db.worker_profiles.put(subject.id, worker_profile)

    return RatingSummary(
        average_rating=subject.rating, total_ratings=subject.total_ratings
    )


def submit_review(
    db: Database,
    author: User,
    shift_id: str,
    subject_id: str,
    rating: int,
    comment: str = "",
    settings: Settings | None = None,
) -> tuple[Review, RatingSummary]:
    settings = settings or get_settings()

    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("Rating must be a whole number")
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be between 1 and 5")
    comment = (comment or "").strip()
    if len(comment) > settings.review_comment_max_length:
        raise ValidationError(
            f"Comment cannot exceed {settings.review_comment_max_length} characters"
        )

    shift = get_shift(db, shift_id)
    if shift.status != ShiftStatus.COMPLETED:
        raise AuthorizationError("You can only review completed shifts")
    counterpart = _counterpart(shift, author)
    if counterpart is None:
        raise AuthorizationError("You are not authorized to review this shift")
    if subject_id != counterpart:
        raise AuthorizationError("You can only review the other participant of this shift")

    subject = db.users.get(subject_id)
    if subject is None:
        raise NotFoundError(f"User {subject_id} not found")

    review = Review(
        shift_id=shift.id,
        author_id=author.id,
        subject_id=subject_id,
        rating=rating,
        comment=comment,
    )
    db.insert_review(review)
    summary = _apply_rating(db, subject, rating)

    logger.info(
        "Review submitted | shift=%s | author=%s | subject=%s | rating=%d",
        shift.id,
        author.id,
        subject_id,
        rating,
    )
    return review, summary


def list_user_reviews(db: Database, user_id: str) -> list[Review]:
    """Reviews a user has received, newest first."""
    return db.get_reviews_for_subject(user_id)
