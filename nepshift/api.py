import logging
from pathlib import Path
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, FastAPI, File, Query, Request, UploadFile, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nepshift import chat, notifications, profiles, reviews, shifts, verification
from nepshift.auth import CurrentUser
from nepshift.config import configure_logging, get_settings
from nepshift.database import get_db
from nepshift.eligibility import BidEligibility, bid_eligibility
from nepshift.errors import (
    AuthorizationError,
    ConflictError,
    NepshiftError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from nepshift.models import (
    ApplicationStatus,
    BidRequest,
    ChatMessage,
    DocumentKind,
    DocumentUpload,
    Notification,
    Review,
    Role,
    Shift,
    ShiftApplication,
    ShiftDraft,
    ShiftStatus,
    ShiftTransition,
    User,
    VerificationProfile,
    VerificationStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter()

UPLOAD_CHUNK_BYTES = 64 * 1024

ERROR_STATUS_CODES: dict[type[NepshiftError], int] = {
    ValidationError: 422,
    PreconditionError: 412,
    StateError: 409,
    ConflictError: 409,
    AuthorizationError: 403,
    NotFoundError: 404,
}


class RejectVerificationRequest(BaseModel):
    reason: str


class ShiftStatusRequest(BaseModel):
    status: ShiftStatus


class ReviewRequest(BaseModel):
    shift_id: str
    subject_id: str
    rating: int
    comment: str = ""


class ReviewResponse(BaseModel):
    review: Review
    updated_rating: reviews.RatingSummary


class SendMessageRequest(BaseModel):
    receiver_id: str
    message: str
    message_id: str | None = None


class VerificationStatusResponse(BaseModel):
    status: VerificationStatus
    is_verified: bool


class HirerProfileResponse(BaseModel):
    user: User
    verification: VerificationProfile
    profile_completion: int


async def handle_domain_error(request: Request, exc: NepshiftError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    logger.warning(
        "%s %s rejected | kind=%s | %s",
        request.method,
        request.url.path,
        exc.kind,
        exc.message,
    )
    return JSONResponse(
        status_code=status_code,
        content={"kind": exc.kind, "detail": exc.message},
    )


def _require_admin(user: User) -> None:
    if user.role != Role.ADMIN:
        raise AuthorizationError("Admin access required")


async def _read_limited(file: UploadFile, limit: int) -> bytes:
    """Read an upload in chunks, giving up as soon as it passes ``limit``."""
    chunks = []
    size = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise ValidationError(f"File exceeds the {limit} byte upload limit")
        chunks.append(chunk)
    return b"".join(chunks)


@router.get("/health")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


# Verification


@router.get("/verification")
async def get_my_verification(user: CurrentUser) -> VerificationProfile:
    return verification.get_or_create_profile(get_db(), user)


@router.get("/users/{user_id}/verification-status")
async def get_verification_status(
    user_id: str, user: CurrentUser
) -> VerificationStatusResponse:
    current = verification.get_status(get_db(), user_id)
    return VerificationStatusResponse(
        status=current, is_verified=current == VerificationStatus.APPROVED
    )


@router.post("/verification/documents/{kind}")
async def upload_verification_document(
    kind: DocumentKind,
    user: CurrentUser,
    file: Annotated[UploadFile, File()],
) -> VerificationProfile:
    """
    Upload one identity document. The file is stored first and removed
    again if the profile does not accept it.
    """
    settings = get_settings()
    content = await _read_limited(file, settings.max_upload_bytes)
    suffix = Path(file.filename or "").suffix.lower()
    stored_name = f"{uuid4().hex}{suffix}"

    upload = DocumentUpload(
        filename=file.filename or stored_name,
        content_type=file.content_type or "application/octet-stream",
        size=len(content),
        reference=f"/uploads/{stored_name}",
    )

    upload_dir = Path(settings.upload_dir)
    upload_dir.mkdir(parents=True, exist_ok=True)
    stored_path = upload_dir / stored_name
    stored_path.write_bytes(content)
    try:
        return verification.upload_document(get_db(), user, kind, upload, settings)
    except NepshiftError:
        stored_path.unlink(missing_ok=True)
        raise


@router.post("/verification/submit")
async def submit_verification(user: CurrentUser) -> VerificationProfile:
    logger.info("POST /verification/submit | user=%s", user.id)
    return verification.submit_for_verification(get_db(), user)


@router.get("/admin/verifications")
async def list_pending_verifications(user: CurrentUser) -> list[VerificationProfile]:
    _require_admin(user)
    return verification.list_pending_verifications(get_db())


@router.post("/admin/verifications/{user_id}/approve")
async def approve_verification(user_id: str, user: CurrentUser) -> VerificationProfile:
    logger.info("POST /admin/verifications/%s/approve | admin=%s", user_id, user.id)
    return verification.admin_approve(get_db(), user, user_id)


@router.post("/admin/verifications/{user_id}/reject")
async def reject_verification(
    user_id: str, body: RejectVerificationRequest, user: CurrentUser
) -> VerificationProfile:
    logger.info("POST /admin/verifications/%s/reject | admin=%s", user_id, user.id)
    return verification.admin_reject(get_db(), user, user_id, body.reason)


@router.get("/eligibility/can-bid")
async def can_bid(user: CurrentUser) -> BidEligibility:
    return bid_eligibility(get_db(), user)


# Profiles


@router.get("/workers")
async def list_workers(user: CurrentUser) -> list[profiles.WorkerListing]:
    return profiles.list_visible_workers(get_db())


@router.get("/workers/{user_id}/profile")
async def get_worker_profile(
    user_id: str, user: CurrentUser
) -> profiles.WorkerProfileView:
    return profiles.get_worker_profile(get_db(), user_id)


@router.put("/workers/me/profile")
async def update_worker_profile(
    changes: profiles.WorkerProfileUpdate, user: CurrentUser
) -> profiles.WorkerProfileView:
    return profiles.update_worker_profile(get_db(), user, changes)


def _hirer_profile(hirer: User) -> HirerProfileResponse:
    db = get_db()
    profile = verification.get_or_create_profile(db, hirer)
    return HirerProfileResponse(
        user=hirer,
        verification=profile,
        profile_completion=profiles.hirer_profile_completion(hirer, profile),
    )


@router.get("/hirers/me/profile")
async def get_hirer_profile(user: CurrentUser) -> HirerProfileResponse:
    if user.role != Role.HIRER:
        raise AuthorizationError("Only hirers have a hirer profile")
    return _hirer_profile(user)


@router.put("/hirers/me/profile")
async def update_hirer_profile(
    changes: profiles.HirerProfileUpdate, user: CurrentUser
) -> HirerProfileResponse:
    updated = profiles.update_hirer_profile(get_db(), user, changes)
    return _hirer_profile(updated)


# Shifts and bids


@router.post("/shifts", status_code=status.HTTP_201_CREATED)
async def post_shift(draft: ShiftDraft, user: CurrentUser) -> Shift:
    logger.info("POST /shifts | hirer=%s", user.id)
    return shifts.post_shift(get_db(), user, draft)


@router.get("/shifts")
async def browse_shifts(
    filters: Annotated[shifts.ShiftFilters, Query()],
) -> list[Shift]:
    return shifts.list_shifts(get_db(), filters)


@router.get("/shifts/mine")
async def my_shifts(
    user: CurrentUser, status_filter: ShiftStatus | None = Query(None, alias="status")
) -> list[Shift]:
    return shifts.list_hirer_shifts(get_db(), user, status_filter)


@router.get("/shifts/{shift_id}")
async def get_shift(shift_id: str) -> Shift:
    return shifts.get_shift(get_db(), shift_id)


@router.put("/shifts/{shift_id}")
async def update_shift(shift_id: str, changes: ShiftDraft, user: CurrentUser) -> Shift:
    logger.info("PUT /shifts/%s | hirer=%s", shift_id, user.id)
    return await shifts.update_shift(get_db(), user, shift_id, changes)


@router.post("/shifts/{shift_id}/applications", status_code=status.HTTP_201_CREATED)
async def apply_to_shift(
    shift_id: str, bid: BidRequest, user: CurrentUser
) -> ShiftApplication:
    logger.info("POST /shifts/%s/applications | worker=%s", shift_id, user.id)
    return await shifts.apply_to_shift(get_db(), user, shift_id, bid)


@router.get("/shifts/{shift_id}/applications")
async def shift_applications(shift_id: str, user: CurrentUser) -> list[ShiftApplication]:
    return shifts.list_shift_applications(get_db(), user, shift_id)


@router.get("/applications/received")
async def received_applications(
    user: CurrentUser,
    status_filter: ApplicationStatus | None = Query(None, alias="status"),
) -> list[ShiftApplication]:
    return shifts.list_received_applications(get_db(), user, status_filter)


@router.get("/applications/mine")
async def my_applications(user: CurrentUser) -> list[ShiftApplication]:
    return shifts.list_worker_applications(get_db(), user)


@router.post("/applications/{application_id}/accept")
async def accept_application(application_id: str, user: CurrentUser) -> ShiftApplication:
    logger.info("POST /applications/%s/accept | hirer=%s", application_id, user.id)
    return await shifts.accept_application(get_db(), user, application_id)


@router.post("/applications/{application_id}/reject")
async def reject_application(application_id: str, user: CurrentUser) -> ShiftApplication:
    logger.info("POST /applications/%s/reject | hirer=%s", application_id, user.id)
    return await shifts.reject_application(get_db(), user, application_id)


@router.put("/shifts/{shift_id}/status")
async def change_shift_status(
    shift_id: str, body: ShiftStatusRequest, user: CurrentUser
) -> Shift:
    logger.info("PUT /shifts/%s/status | to=%s | hirer=%s", shift_id, body.status, user.id)
    return await shifts.change_shift_status(get_db(), user, shift_id, body.status)


@router.post("/shifts/{shift_id}/complete")
async def complete_shift(shift_id: str, user: CurrentUser) -> Shift:
    logger.info("POST /shifts/%s/complete | hirer=%s", shift_id, user.id)
    return await shifts.complete_shift(get_db(), user, shift_id)


@router.get("/shifts/{shift_id}/transitions")
async def shift_transitions(shift_id: str, user: CurrentUser) -> list[ShiftTransition]:
    return shifts.get_shift_transitions(get_db(), user, shift_id)


# Reviews


@router.get("/shifts/{shift_id}/can-review")
async def can_review(shift_id: str, user: CurrentUser) -> reviews.ReviewEligibility:
    db = get_db()
    return reviews.review_eligibility(db, user, shifts.get_shift(db, shift_id))


@router.post("/reviews", status_code=status.HTTP_201_CREATED)
async def submit_review(body: ReviewRequest, user: CurrentUser) -> ReviewResponse:
    logger.info("POST /reviews | shift=%s | author=%s", body.shift_id, user.id)
    review, summary = reviews.submit_review(
        get_db(), user, body.shift_id, body.subject_id, body.rating, body.comment
    )
    return ReviewResponse(review=review, updated_rating=summary)


@router.get("/users/{user_id}/reviews")
async def user_reviews(user_id: str) -> list[Review]:
    return reviews.list_user_reviews(get_db(), user_id)


# Chat


@router.get("/messages/unread-count")
async def unread_count(user: CurrentUser) -> dict[str, int]:
    return {"unread_count": chat.unread_count(get_db(), user)}


@router.post("/messages", status_code=status.HTTP_201_CREATED)
async def send_message(body: SendMessageRequest, user: CurrentUser) -> ChatMessage:
    return chat.send_message(
        get_db(), user, body.receiver_id, body.message, body.message_id
    )


@router.get("/messages/{other_id}")
async def chat_history(other_id: str, user: CurrentUser) -> list[ChatMessage]:
    return chat.get_chat_messages(get_db(), user.id, other_id)


@router.post("/messages/rooms/{chat_id}/read")
async def mark_read(chat_id: str, user: CurrentUser) -> dict[str, int]:
    return {"updated": chat.mark_messages_as_read(get_db(), user, chat_id)}


# Notifications


@router.get("/notifications")
async def list_notifications(user: CurrentUser) -> list[Notification]:
    return notifications.list_notifications(get_db(), user)


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(notification_id: str, user: CurrentUser) -> Notification:
    return notifications.mark_as_read(get_db(), user, notification_id)


@router.post("/notifications/read-all")
async def mark_all_notifications_read(user: CurrentUser) -> dict[str, int]:
    return {"updated": notifications.mark_all_as_read(get_db(), user)}


@router.delete(
    "/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_notification(notification_id: str, user: CurrentUser) -> None:
    notifications.delete_notification(get_db(), user, notification_id)


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings.log_level)
    app = FastAPI(title=settings.app_name, debug=settings.debug)
    app.add_exception_handler(NepshiftError, handle_domain_error)
    app.include_router(router)
    return app
