"""
Shift lifecycle and the bids placed on shifts.

Shift: open -> reserved -> in-progress -> completed, or any non-terminal
state -> cancelled.
Bid: pending -> accepted | rejected.

Every operation that reads a shift's status and then writes holds that
shift's lock, so an accept and a concurrent apply cannot both see it open.
"""

import datetime as dt
import logging

from pydantic import BaseModel

from nepshift.config import Settings, get_settings
from nepshift.database import Database
from nepshift.eligibility import can_bid
from nepshift.errors import (
    AuthorizationError,
    NotFoundError,
    PreconditionError,
    StateError,
    ValidationError,
)
from nepshift.models import (
    TERMINAL_SHIFT_STATUSES,
    ApplicationStatus,
    BidRequest,
    NotificationType,
    Role,
    Shift,
    ShiftApplication,
    ShiftCategory,
    ShiftDraft,
    ShiftStatus,
    ShiftTransition,
    User,
    WorkerProfile,
    utc_now,
)
from nepshift.notifications import notify

logger = logging.getLogger(__name__)

# Forward order for manual status changes; cancelled is reachable from any
# non-terminal state.
SHIFT_PROGRESSION = [
    ShiftStatus.OPEN,
    ShiftStatus.RESERVED,
    ShiftStatus.IN_PROGRESS,
    ShiftStatus.COMPLETED,
]


class ShiftFilters(BaseModel):
    status: ShiftStatus = ShiftStatus.OPEN
    category: ShiftCategory | None = None
    city: str | None = None
    min_pay: float | None = None
    max_pay: float | None = None
    date: dt.date | None = None


def get_shift(db: Database, shift_id: str) -> Shift:
    shift = db.shifts.get(shift_id)
    if shift is None:
        raise NotFoundError(f"Shift {shift_id} not found")
    return shift


def get_application(db: Database, application_id: str) -> ShiftApplication:
    application = db.applications.get(application_id)
    if application is None:
        raise NotFoundError(f"Application {application_id} not found")
    return application


def _require_owner(shift: Shift, user: User) -> None:
    if shift.hirer_id != user.id:
        raise AuthorizationError("You can only manage your own shifts")


def _set_status(
    db: Database, shift: Shift, new_status: ShiftStatus, actor: User
) -> None:
    transition = ShiftTransition(
        shift_id=shift.id,
        from_status=shift.status,
        to_status=new_status,
        actor_id=actor.id,
    )
    shift.status = new_status
    shift.updated_at = transition.created_at
    db.shifts.put(shift.id, shift)
    db.record_transition(transition)
    logger.info(
        "Shift %s | shift=%s | from=%s | actor=%s",
        new_status,
        shift.id,
        transition.from_status,
        actor.id,
    )


def _decide(
    db: Database, application: ShiftApplication, status: ApplicationStatus
) -> None:
    application.status = status
    application.decided_at = utc_now()
    db.update_application(application)


def _validate_draft(draft: ShiftDraft) -> None:
    if not draft.title or not draft.title.strip():
        raise ValidationError("Job title is required")
    if len(draft.title) > 100:
        raise ValidationError("Title cannot exceed 100 characters")
    if len(draft.description) > 1000:
        raise ValidationError("Description cannot exceed 1000 characters")
    if draft.category is None:
        raise ValidationError("Please select a category")
    if draft.date is None:
        raise ValidationError("Shift date is required")
    if not draft.time.start or not draft.time.end:
        raise ValidationError("Start and end time are required")
    if draft.pay is None:
        raise ValidationError("Pay range is required")
    if draft.pay.min < 0 or draft.pay.max < 0:
        raise ValidationError("Pay cannot be negative")
    if draft.pay.min > draft.pay.max:
        raise ValidationError("Minimum pay cannot be greater than maximum pay")


def _shift_fields(draft: ShiftDraft) -> dict:
    return {
        "title": draft.title.strip(),
        "description": draft.description,
        "category": draft.category,
        "pay": draft.pay,
        "location": draft.location,
        "date": draft.date,
        "time": draft.time,
        "skills": [s.strip() for s in draft.skills if s.strip()],
    }


def post_shift(db: Database, hirer: User, draft: ShiftDraft) -> Shift:
    if hirer.role != Role.HIRER:
        raise AuthorizationError("Only hirers can post shifts")
    _validate_draft(draft)

    shift = Shift(hirer_id=hirer.id, **_shift_fields(draft))
    db.shifts.put(shift.id, shift)
    db.record_transition(
        ShiftTransition(
            shift_id=shift.id,
            from_status=None,
            to_status=ShiftStatus.OPEN,
            actor_id=hirer.id,
        )
    )
    logger.info("Shift posted | shift=%s | hirer=%s", shift.id, hirer.id)
    return shift


async def update_shift(
    db: Database, hirer: User, shift_id: str, changes: ShiftDraft
) -> Shift:
    """
    Edit the details of a shift that is still open.

    Only the fields set on ``changes`` are applied; the merged result is
    validated like a new post.
    """
    _require_owner(get_shift(db, shift_id), hirer)

    lock = await db.get_lock(shift_id)
    async with lock:
        shift = get_shift(db, shift_id)
        if shift.status != ShiftStatus.OPEN:
            raise StateError(
                f"Only open shifts can be edited, this one is {shift.status}"
            )

        current = ShiftDraft(
            **{name: getattr(shift, name) for name in ShiftDraft.model_fields}
        )
        draft = current.model_copy(
            update={name: getattr(changes, name) for name in changes.model_fields_set}
        )
        _validate_draft(draft)

        for name, value in _shift_fields(draft).items():
            setattr(shift, name, value)
        shift.updated_at = utc_now()
        db.shifts.put(shift.id, shift)

    logger.info(
        "Shift updated | shift=%s | fields=%s",
        shift.id,
        sorted(changes.model_fields_set),
    )
    return shift


def _validate_bid(bid: BidRequest, settings: Settings) -> None:
    if bid.bid_amount < 0:
        raise ValidationError("Rate cannot be negative")
    if not bid.estimated_arrival_time.strip():
        raise ValidationError("Please specify when you can start")
    if len(bid.message) > settings.bid_message_max_length:
        raise ValidationError(
            f"Message cannot exceed {settings.bid_message_max_length} characters"
        )


async def apply_to_shift(
    db: Database,
    worker: User,
    shift_id: str,
    bid: BidRequest,
    settings: Settings | None = None,
) -> ShiftApplication:
    """
    Place a bid on an open shift.

    Eligibility is evaluated from stored verification state, never from a
    client-supplied flag.
    """
    settings = settings or get_settings()
    get_shift(db, shift_id)
    _validate_bid(bid, settings)

    lock = await db.get_lock(shift_id)
    async with lock:
        shift = get_shift(db, shift_id)

        if not can_bid(worker, db.verifications.get(worker.id)):
            raise AuthorizationError(
                "You must be a verified worker to bid on shifts"
            )
        if shift.status != ShiftStatus.OPEN:
            raise StateError("This shift is no longer accepting bids")

        application = ShiftApplication(
            shift_id=shift.id,
            worker_id=worker.id,
            hirer_id=shift.hirer_id,
            bid_amount=bid.bid_amount,
            estimated_arrival_time=bid.estimated_arrival_time.strip(),
            message=bid.message,
        )
        db.insert_application(application)

    logger.info(
        "Bid placed | application=%s | shift=%s | worker=%s",
        application.id,
        shift_id,
        worker.id,
    )
    return application


async def accept_application(
    db: Database,
    hirer: User,
    application_id: str,
    settings: Settings | None = None,
) -> ShiftApplication:
    """
    Accept a pending bid and reserve the shift for that worker.

    Other pending bids on the shift are rejected when
    ``auto_reject_sibling_bids`` is enabled.
    """
    settings = settings or get_settings()
    application = get_application(db, application_id)
    _require_owner(get_shift(db, application.shift_id), hirer)

    lock = await db.get_lock(application.shift_id)
    async with lock:
        shift = get_shift(db, application.shift_id)
        application = get_application(db, application_id)

        if application.status != ApplicationStatus.PENDING:
            raise StateError(f"Application is already {application.status}")
        if shift.status != ShiftStatus.OPEN:
            raise StateError(f"Shift is {shift.status}, not open")

        _decide(db, application, ApplicationStatus.ACCEPTED)
        shift.worker_id = application.worker_id
        _set_status(db, shift, ShiftStatus.RESERVED, hirer)

        rejected = []
        if settings.auto_reject_sibling_bids:
            for sibling in db.get_applications_for_shift(shift.id):
                if sibling.status == ApplicationStatus.PENDING:
                    _decide(db, sibling, ApplicationStatus.REJECTED)
                    rejected.append(sibling)

    notify(
        db,
        application.worker_id,
        "Bid Accepted",
        f"Your bid for '{shift.title}' was accepted.",
        type=NotificationType.SUCCESS,
        related_id=shift.id,
    )
    for sibling in rejected:
        notify(
            db,
            sibling.worker_id,
            "Bid Not Selected",
            f"Another worker was selected for '{shift.title}'.",
            related_id=shift.id,
        )

    logger.info(
        "Application accepted | shift=%s | worker=%s | siblings_rejected=%d",
        shift.id,
        application.worker_id,
        len(rejected),
    )
    return application


async def reject_application(
    db: Database, hirer: User, application_id: str
) -> ShiftApplication:
    application = get_application(db, application_id)
    _require_owner(get_shift(db, application.shift_id), hirer)

    lock = await db.get_lock(application.shift_id)
    async with lock:
        application = get_application(db, application_id)
        if application.status != ApplicationStatus.PENDING:
            raise StateError(f"Application is already {application.status}")
        _decide(db, application, ApplicationStatus.REJECTED)

    shift = get_shift(db, application.shift_id)
    notify(
        db,
        application.worker_id,
        "Bid Rejected",
        f"Your bid for '{shift.title}' was not accepted.",
        type=NotificationType.ERROR,
        related_id=shift.id,
    )
    logger.info("Application rejected | application=%s", application.id)
    return application


def _complete(db: Database, shift: Shift, hirer: User) -> Shift:
    if shift.status in TERMINAL_SHIFT_STATUSES:
        raise StateError(f"Shift is already {shift.status}")
    if shift.worker_id is None:
        raise PreconditionError("Cannot complete shift without an assigned worker")

    _set_status(db, shift, ShiftStatus.COMPLETED, hirer)

    worker_profile = db.worker_profiles.get(shift.worker_id) or WorkerProfile(
        user_id=shift.worker_id
    )
    worker_profile.total_jobs_completed += 1
    db.worker_profiles.put(shift.worker_id, worker_profile)

    owner = db.users.get(shift.hirer_id)
    if owner is not None:
        owner.total_hires += 1
        db.users.put(owner.id, owner)

    logger.info(
        "Shift stats updated | worker=%s | jobs_completed=%d",
        shift.worker_id,
        worker_profile.total_jobs_completed,
    )
    return shift


async def complete_shift(db: Database, hirer: User, shift_id: str) -> Shift:
    """Mark a shift completed, update both parties' stats and unlock reviews."""
    _require_owner(get_shift(db, shift_id), hirer)

    lock = await db.get_lock(shift_id)
    async with lock:
        return _complete(db, get_shift(db, shift_id), hirer)


async def change_shift_status(
    db: Database, hirer: User, shift_id: str, new_status: ShiftStatus
) -> Shift:
    _require_owner(get_shift(db, shift_id), hirer)

    withdrawn: list[ShiftApplication] = []
    lock = await db.get_lock(shift_id)
    async with lock:
        shift = get_shift(db, shift_id)

        if new_status == ShiftStatus.COMPLETED:
            return _complete(db, shift, hirer)
        if shift.status in TERMINAL_SHIFT_STATUSES:
            raise StateError(f"Shift is already {shift.status}")

        if new_status == ShiftStatus.CANCELLED:
            for application in db.get_applications_for_shift(shift.id):
                if application.status == ApplicationStatus.PENDING:
                    _decide(db, application, ApplicationStatus.REJECTED)
                    withdrawn.append(application)
        else:
            if SHIFT_PROGRESSION.index(new_status) <= SHIFT_PROGRESSION.index(
                shift.status
            ):
                raise StateError(
                    f"Cannot move shift from {shift.status} to {new_status}"
                )
            if shift.worker_id is None:
                raise PreconditionError(
                    f"A worker must be accepted before the shift is {new_status}"
                )

        _set_status(db, shift, new_status, hirer)

    for application in withdrawn:
        notify(
            db,
            application.worker_id,
            "Shift Cancelled",
            f"'{shift.title}' was cancelled by the hirer.",
            type=NotificationType.ERROR,
            related_id=shift.id,
        )
    return shift


def list_shifts(db: Database, filters: ShiftFilters | None = None) -> list[Shift]:
    """Browse shifts, newest first."""
    filters = filters or ShiftFilters()
    shifts = [s for s in db.shifts.all() if s.status == filters.status]

    if filters.category is not None:
        shifts = [s for s in shifts if s.category == filters.category]
    if filters.city:
        city = filters.city.lower()
        shifts = [s for s in shifts if s.location.city.lower() == city]
    if filters.min_pay is not None:
        shifts = [s for s in shifts if s.pay.min >= filters.min_pay]
    if filters.max_pay is not None:
        shifts = [s for s in shifts if s.pay.max <= filters.max_pay]
    if filters.date is not None:
        shifts = [s for s in shifts if s.date == filters.date]

    return sorted(shifts, key=lambda s: s.created_at, reverse=True)


def list_hirer_shifts(
    db: Database, hirer: User, status: ShiftStatus | None = None
) -> list[Shift]:
    shifts = [s for s in db.shifts.all() if s.hirer_id == hirer.id]
    if status is not None:
        shifts = [s for s in shifts if s.status == status]
    return sorted(shifts, key=lambda s: s.created_at, reverse=True)


def list_shift_applications(
    db: Database, hirer: User, shift_id: str
) -> list[ShiftApplication]:
    _require_owner(get_shift(db, shift_id), hirer)
    return db.get_applications_for_shift(shift_id)


def list_worker_applications(db: Database, worker: User) -> list[ShiftApplication]:
    return db.get_applications_for_worker(worker.id)


def list_received_applications(
    db: Database, hirer: User, status: ApplicationStatus | None = None
) -> list[ShiftApplication]:
    """Bids across every shift the hirer posted, newest first."""
    if hirer.role != Role.HIRER:
        raise AuthorizationError("Only hirers receive bids")
    applications = [a for a in db.applications.all() if a.hirer_id == hirer.id]
    if status is not None:
        applications = [a for a in applications if a.status == status]
    return sorted(applications, key=lambda a: a.applied_at, reverse=True)


def get_shift_transitions(
    db: Database, user: User, shift_id: str
) -> list[ShiftTransition]:
    shift = get_shift(db, shift_id)
    if user.id not in (shift.hirer_id, shift.worker_id) and user.role != Role.ADMIN:
        raise AuthorizationError("You are not part of this shift")
    return db.get_transitions(shift_id)
