"""
Identity verification workflow shared by workers and hirers.

Lifecycle: unverified -> pending -> approved | rejected. A rejected profile
is reopened (back to unverified) by the next document upload and can then be
submitted again.
"""

import logging

from nepshift.config import Settings, get_settings
from nepshift.database import Database
from nepshift.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from nepshift.models import (
    REQUIRED_DOCUMENTS,
    DocumentKind,
    DocumentUpload,
    NotificationType,
    Role,
    User,
    VerificationProfile,
    VerificationStatus,
    utc_now,
)
from nepshift.notifications import notify, notify_admins

logger = logging.getLogger(__name__)


def required_documents(role: Role) -> frozenset[DocumentKind]:
    return REQUIRED_DOCUMENTS[role]


def is_verified(profile: VerificationProfile | None) -> bool:
    return profile is not None and profile.status == VerificationStatus.APPROVED


def missing_documents(profile: VerificationProfile) -> list[DocumentKind]:
    return sorted(
        kind
        for kind in required_documents(profile.role)
        if not profile.documents.get(kind)
    )


def get_or_create_profile(db: Database, user: User) -> VerificationProfile:
    """Return the user's profile, creating an empty one on first access."""
    profile = db.verifications.get(user.id)
    if profile is None:
        profile = VerificationProfile(user_id=user.id, role=user.role)
        db.verifications.put(user.id, profile)
    return profile


def get_status(db: Database, user_id: str) -> VerificationStatus:
    if user_id not in db.users:
        raise NotFoundError(f"User {user_id} not found")
    profile = db.verifications.get(user_id)
    if profile is None:
        return VerificationStatus.UNVERIFIED
    return profile.status


def validate_upload(
    role: Role, kind: DocumentKind, upload: DocumentUpload, settings: Settings
) -> None:
    if kind not in required_documents(role):
        raise ValidationError(f"Document {kind} is not accepted for role {role}")
    if upload.content_type not in settings.allowed_upload_types:
        raise ValidationError(
            f"Unsupported file type {upload.content_type}; upload an image or PDF"
        )
    if upload.size <= 0:
        raise ValidationError("Uploaded file is empty")
    if upload.size > settings.max_upload_bytes:
        raise ValidationError(
            f"File exceeds the {settings.max_upload_bytes} byte upload limit"
        )


def reopen(profile: VerificationProfile) -> VerificationProfile:
    """Move a rejected profile back to an editable state."""
    if profile.status != VerificationStatus.REJECTED:
        raise StateError(f"Only rejected profiles can be reopened, not {profile.status}")
    profile.status = VerificationStatus.UNVERIFIED
    profile.rejection_reason = None
    logger.info("Verification reopened | user=%s", profile.user_id)
    return profile


def upload_document(
    db: Database,
    user: User,
    kind: DocumentKind,
    upload: DocumentUpload,
    settings: Settings | None = None,
) -> VerificationProfile:
    """
    Store or overwrite one verification document.

    Documents are frozen while the profile is pending review or approved.
    """
    settings = settings or get_settings()
    validate_upload(user.role, kind, upload, settings)

    profile = get_or_create_profile(db, user)
    if profile.status in (VerificationStatus.PENDING, VerificationStatus.APPROVED):
        raise StateError(f"Documents cannot change while verification is {profile.status}")
    if profile.status == VerificationStatus.REJECTED:
        reopen(profile)

    profile.documents[kind] = upload.reference
    db.verifications.put(user.id, profile)
    logger.info(
        "Document uploaded | user=%s | kind=%s | completion=%s",
        user.id,
        kind,
        profile.completion_percentage,
    )
    return profile


def submit_for_verification(db: Database, user: User) -> VerificationProfile:
    profile = get_or_create_profile(db, user)

    if profile.status == VerificationStatus.APPROVED:
        raise StateError("Your profile is already verified")
    if profile.status == VerificationStatus.PENDING:
        raise StateError("Your verification request is already pending review")
    if not required_documents(user.role):
        raise PreconditionError(f"Role {user.role} does not go through verification")

    missing = missing_documents(profile)
    if missing:
        raise PreconditionError(
            "Upload all required documents first; missing: "
            + ", ".join(str(kind) for kind in missing)
        )

    profile.status = VerificationStatus.PENDING
    profile.rejection_reason = None
    profile.submitted_at = utc_now()
    db.verifications.put(user.id, profile)

    notify_admins(
        db,
        "New Verification Request",
        f"A {user.role} has submitted documents for verification.",
        related_id=user.id,
    )
    logger.info("Verification submitted | user=%s | role=%s", user.id, user.role)
    return profile


def _pending_profile(db: Database, admin: User, user_id: str) -> VerificationProfile:
    if admin.role != Role.ADMIN:
        raise AuthorizationError("Only admins can review verifications")
    if user_id not in db.users:
        raise NotFoundError(f"User {user_id} not found")
    profile = db.verifications.get(user_id)
    current = profile.status if profile else VerificationStatus.UNVERIFIED
    if profile is None or current != VerificationStatus.PENDING:
        raise StateError(f"Verification is {current}, not pending")
    return profile


def admin_approve(db: Database, admin: User, user_id: str) -> VerificationProfile:
    profile = _pending_profile(db, admin, user_id)

    profile.status = VerificationStatus.APPROVED
    profile.verified_at = utc_now()
    profile.verified_by = admin.id
    profile.rejection_reason = None
    db.verifications.put(user_id, profile)

    notify(
        db,
        user_id,
        "Profile Verified",
        "Your profile verification has been approved! You can now apply for shifts.",
        type=NotificationType.SUCCESS,
    )
    logger.info("Verification approved | user=%s | admin=%s", user_id, admin.id)
    return profile


def admin_reject(
    db: Database, admin: User, user_id: str, reason: str
) -> VerificationProfile:
    if not reason or not reason.strip():
        raise ValidationError("A rejection reason is required")
    profile = _pending_profile(db, admin, user_id)

    profile.status = VerificationStatus.REJECTED
    profile.rejection_reason = reason.strip()
    profile.verified_at = None
    profile.verified_by = None
    db.verifications.put(user_id, profile)

    notify(
        db,
        user_id,
        "Verification Rejected",
        f"Your verification was rejected. Reason: {profile.rejection_reason}",
        type=NotificationType.ERROR,
    )
    logger.info("Verification rejected | user=%s | admin=%s", user_id, admin.id)
    return profile


def list_pending_verifications(db: Database) -> list[VerificationProfile]:
    """Admin review queue, oldest submission first."""
    pending = [
        p for p in db.verifications.all() if p.status == VerificationStatus.PENDING
    ]
    return sorted(pending, key=lambda p: p.submitted_at or utc_now())
