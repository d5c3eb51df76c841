"""Who may place a bid on a shift."""

from pydantic import BaseModel

from nepshift.database import Database
from nepshift.models import Role, User, VerificationProfile, VerificationStatus
from nepshift.verification import is_verified


class BidEligibility(BaseModel):
    can_bid: bool
    verification_status: VerificationStatus
    reason: str | None = None


def can_bid(user: User, profile: VerificationProfile | None) -> bool:
    return user.role == Role.HELPER and is_verified(profile)


def bid_eligibility(db: Database, user: User) -> BidEligibility:
    """Evaluate the gate from stored verification state."""
    profile = db.verifications.get(user.id)
    status = profile.status if profile else VerificationStatus.UNVERIFIED

    if user.role != Role.HELPER:
        reason = "Only workers can bid on shifts."
    elif not is_verified(profile):
        reason = "You must be verified to bid on shifts. Please complete your verification."
    else:
        reason = None

    return BidEligibility(
        can_bid=can_bid(user, profile),
        verification_status=status,
        reason=reason,
    )
