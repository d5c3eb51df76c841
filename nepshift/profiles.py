"""
Worker and hirer profiles.

Completion percentages are derived here and in the models, never stored, so
every reader agrees on them.
"""

import logging

from pydantic import BaseModel, Field

from nepshift.config import get_settings
from nepshift.database import Database
from nepshift.errors import AuthorizationError, NotFoundError
from nepshift.models import (
    Address,
    DocumentKind,
    Role,
    SkillCategory,
    User,
    VerificationProfile,
    WorkerLocation,
    WorkerProfile,
    utc_now,
    worker_profile_completion,
)

logger = logging.getLogger(__name__)


class WorkerProfileUpdate(BaseModel):
    skill_category: SkillCategory | None = None
    years_of_experience: int | None = None
    about_me: str | None = Field(default=None, max_length=500)
    hourly_rate: float | None = None
    location: WorkerLocation | None = None
    citizenship_number: str | None = None
    is_available: bool | None = None


class HirerProfileUpdate(BaseModel):
    full_name: str | None = None
    phone: str | None = None
    bio: str | None = None
    address: Address | None = None


class WorkerProfileView(WorkerProfile):
    """A worker profile with its completion derived at read time."""

    profile_completion_percentage: int


class WorkerListing(BaseModel):
    user: User
    profile: WorkerProfileView
    is_verified: bool


def hirer_profile_completion(
    user: User, verification: VerificationProfile | None
) -> int:
    """
    Bio 40, full map address 20, phone 20, all identity documents 20.
    """
    percentage = 0
    if user.bio and user.bio.strip():
        percentage += 40

    address = user.address
    if (
        address is not None
        and address.latitude
        and address.longitude
        and address.district
        and address.municipality
        and address.ward
    ):
        percentage += 20

    if user.phone and user.phone.strip():
        percentage += 20

    if verification is not None and all(
        verification.documents.get(kind) for kind in DocumentKind
    ):
        percentage += 20

    return percentage
def _changed_fields(changes: BaseModel) -> dict:
    # Keep nested models intact; model_copy does not re-validate dicts.
    return {name: getattr(changes, name) for name in changes.model_fields_set}


def worker_view(db: Database, profile: WorkerProfile) -> WorkerProfileView:
    verification = db.verifications.get(profile.user_id)
    return WorkerProfileView(
        **dict(profile),
        profile_completion_percentage=worker_profile_completion(profile, verification),
    )


def get_worker_profile(db: Database, user_id: str) -> WorkerProfileView:
    user = db.users.get(user_id)
    if user is None or user.role != Role.HELPER:
        raise NotFoundError(f"Worker {user_id} not found")
    profile = db.worker_profiles.get(user_id)
    if profile is None:
        profile = WorkerProfile(user_id=user_id)
    return worker_view(db, profile)


def update_worker_profile(
    db: Database, user: User, changes: WorkerProfileUpdate
) -> WorkerProfileView:
    if user.role != Role.HELPER:
        raise AuthorizationError("Only workers have a worker profile")

    profile = db.worker_profiles.get(user.id) or WorkerProfile(user_id=user.id)
    updated = profile.model_copy(
        update={**_changed_fields(changes), "updated_at": utc_now()}
    )
    db.worker_profiles.put(user.id, updated)
    view = worker_view(db, updated)
    logger.info(
        "Worker profile updated | user=%s | completion=%s",
        user.id,
        view.profile_completion_percentage,
    )
    return view


def update_hirer_profile(db: Database, user: User, changes: HirerProfileUpdate) -> User:
    if user.role != Role.HIRER:
        raise AuthorizationError("Only hirers can edit a hirer profile")
    updated = user.model_copy(update=_changed_fields(changes))
    db.users.put(user.id, updated)
    return updated


def list_visible_workers(
    db: Database, threshold: int | None = None
) -> list[WorkerListing]:
    """Workers whose profiles are complete enough to show in search."""
    if threshold is None:
        threshold = get_settings().search_visibility_threshold

    listings = []
    for user in db.get_users_by_role(Role.HELPER):
        profile = db.worker_profiles.get(user.id)
        if profile is None:
            continue
        view = worker_view(db, profile)
        if view.profile_completion_percentage < threshold:
            continue
        verification = db.verifications.get(user.id)
        listings.append(
            WorkerListing(
                user=user,
                profile=view,
                is_verified=verification is not None and verification.is_verified,
            )
        )
    return listings
