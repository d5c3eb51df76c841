"""
Domain models for the Nepshift marketplace.
"""

import datetime as dt
from enum import StrEnum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field


def new_id() -> str:
    return str(uuid4())


def utc_now() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class Role(StrEnum):
    HELPER = "helper"
    HIRER = "hirer"
    ADMIN = "admin"


class VerificationStatus(StrEnum):
    UNVERIFIED = "unverified"  # Collecting documents
    PENDING = "pending"  # Submitted, waiting for an admin
    APPROVED = "approved"
    REJECTED = "rejected"


class DocumentKind(StrEnum):
    CITIZENSHIP_FRONT = "citizenshipFront"
    CITIZENSHIP_BACK = "citizenshipBack"
    SELFIE_WITH_ID = "selfieWithId"


# Document kinds a role must upload before submitting for verification.
REQUIRED_DOCUMENTS: dict[Role, frozenset[DocumentKind]] = {
    Role.HELPER: frozenset(DocumentKind),
    Role.HIRER: frozenset(DocumentKind),
    Role.ADMIN: frozenset(),
}


class ShiftStatus(StrEnum):
    OPEN = "open"  # Accepting bids
    RESERVED = "reserved"  # A worker was selected
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"  # Unlocks mutual reviews
    CANCELLED = "cancelled"


TERMINAL_SHIFT_STATUSES = frozenset({ShiftStatus.COMPLETED, ShiftStatus.CANCELLED})


class ApplicationStatus(StrEnum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class ShiftCategory(StrEnum):
    CONSTRUCTION = "Construction"
    MARKETING = "Marketing"
    DELIVERY = "Delivery"
    EVENT_STAFF = "Event Staff"
    CLEANING = "Cleaning"
    SECURITY = "Security"
    TEACHING = "Teaching"
    DATA_ENTRY = "Data Entry"
    CUSTOMER_SERVICE = "Customer Service"
    OTHER = "Other"


class SkillCategory(StrEnum):
    PLUMBER = "Plumber"
    ELECTRICIAN = "Electrician"
    CLEANING = "Cleaning"
    GARDENING = "Gardening"
    GENERAL_LABOUR = "General Labour"
    COOKING = "Cooking"
    DELIVERY = "Delivery"
    PAINTING = "Painting"
    CARPENTRY = "Carpentry"
    OTHER = "Other"


class NotificationType(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


class Address(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    district: str | None = None
    municipality: str | None = None
    ward: int | None = None
    street: str | None = None


class User(BaseModel):
    id: str
    full_name: str
    email: str
    phone: str | None = None
    role: Role = Role.HELPER
    bio: str | None = None
    address: Address | None = None

    # Received review aggregates
    rating_sum: float = 0
    total_ratings: int = 0
    rating: float = 0

    # Incremented when a shift this user posted is completed
    total_hires: int = 0
    created_at: dt.datetime = Field(default_factory=utc_now)


class VerificationProfile(BaseModel):
    """Identity verification state for one user."""

    user_id: str
    role: Role
    status: VerificationStatus = VerificationStatus.UNVERIFIED
    documents: dict[DocumentKind, str] = {}
    rejection_reason: str | None = None  # Set only while rejected
    submitted_at: dt.datetime | None = None
    verified_at: dt.datetime | None = None
    verified_by: str | None = None

    @computed_field
    @property
    def is_verified(self) -> bool:
        return self.status == VerificationStatus.APPROVED

    @computed_field
    @property
    def completion_percentage(self) -> int:
        return verification_completion(self)


class Coordinates(BaseModel):
    latitude: float
    longitude: float


class WorkerLocation(BaseModel):
    address: str | None = None
    city: str | None = None
    coordinates: Coordinates | None = None


class WorkerProfile(BaseModel):
    user_id: str
    skill_category: SkillCategory | None = None
    years_of_experience: int | None = None
    about_me: str | None = Field(default=None, max_length=500)
    hourly_rate: float | None = None
    location: WorkerLocation = Field(default_factory=WorkerLocation)
    citizenship_number: str | None = None

    average_rating: float = 0
    total_jobs_completed: int = 0
    total_earnings: float = 0
    is_available: bool = True
    updated_at: dt.datetime = Field(default_factory=utc_now)


class PayRange(BaseModel):
    min: float
    max: float


class ShiftLocation(BaseModel):
    address: str = "Not Provided"
    city: str = "Not Provided"
    coordinates: Coordinates | None = None


class ShiftTime(BaseModel):
    start: str | None = None  # e.g. "09:00 AM"
    end: str | None = None


class ShiftDraft(BaseModel):
    """Fields a hirer submits when posting a shift."""

    title: str | None = None
    description: str = ""
    category: ShiftCategory | None = None
    pay: PayRange | None = None
    location: ShiftLocation = Field(default_factory=ShiftLocation)
    date: dt.date | None = None
    time: ShiftTime = Field(default_factory=ShiftTime)
    skills: list[str] = []


class Shift(BaseModel):
    id: str = Field(default_factory=new_id)
    hirer_id: str
    title: str
    description: str = ""
    category: ShiftCategory
    pay: PayRange
    location: ShiftLocation = Field(default_factory=ShiftLocation)
    date: dt.date
    time: ShiftTime
    skills: list[str] = []
    status: ShiftStatus = ShiftStatus.OPEN
    worker_id: str | None = None  # Set when a bid is accepted
    created_at: dt.datetime = Field(default_factory=utc_now)
    updated_at: dt.datetime = Field(default_factory=utc_now)


class ShiftTransition(BaseModel):
    """Audit log entry for a shift status change."""

    shift_id: str
    from_status: ShiftStatus | None
    to_status: ShiftStatus
    actor_id: str
    created_at: dt.datetime = Field(default_factory=utc_now)


class BidRequest(BaseModel):
    bid_amount: float
    estimated_arrival_time: str = ""
    message: str = ""


class ShiftApplication(BaseModel):
    """A worker's bid on a shift."""

    id: str = Field(default_factory=new_id)
    shift_id: str
    worker_id: str
    hirer_id: str
    bid_amount: float
    estimated_arrival_time: str
    message: str = ""
    status: ApplicationStatus = ApplicationStatus.PENDING
    applied_at: dt.datetime = Field(default_factory=utc_now)
    decided_at: dt.datetime | None = None


class Review(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    shift_id: str
    author_id: str
    subject_id: str
    rating: int
    comment: str = ""
    created_at: dt.datetime = Field(default_factory=utc_now)


class DocumentUpload(BaseModel):
    """Metadata for a stored verification document."""

    filename: str
    content_type: str
    size: int
    reference: str  # URL or storage key of the stored file


class Notification(BaseModel):
    id: str = Field(default_factory=new_id)
    recipient_id: str
    type: NotificationType = NotificationType.INFO
    title: str
    message: str
    related_id: str | None = None
    is_read: bool = False
    created_at: dt.datetime = Field(default_factory=utc_now)


class ChatMessage(BaseModel):
    id: str = Field(default_factory=new_id)
    chat_id: str
    sender_id: str
    receiver_id: str
    sender_role: Role
    message: str
    is_read: bool = False
    created_at: dt.datetime = Field(default_factory=utc_now)


def verification_completion(profile: VerificationProfile) -> int:
    """Share of the role's required documents that have been uploaded."""
    required = REQUIRED_DOCUMENTS[profile.role]
    if not required:
        return 100
    present = sum(1 for kind in required if profile.documents.get(kind))
    return round(100 * present / len(required))


def worker_profile_completion(
    profile: WorkerProfile, verification: VerificationProfile | None = None
) -> int:
    """
    Weighted completion of a worker profile.

    Basic fields are worth 80 points in total, identity the remaining 20.
    The citizenship images are the ones uploaded for verification, so the
    score moves as soon as a document is uploaded. Workers need 80 to appear
    in search.
    """
    documents = verification.documents if verification is not None else {}
    percentage = 0
    if profile.skill_category:
        percentage += 16
    if profile.years_of_experience is not None:
        percentage += 16
    if profile.about_me:
        percentage += 16
    if profile.hourly_rate:
        percentage += 16
    if profile.location.coordinates is not None:
        percentage += 16

    if profile.citizenship_number:
        percentage += 7
    if documents.get(DocumentKind.CITIZENSHIP_FRONT):
        percentage += 7
    if documents.get(DocumentKind.CITIZENSHIP_BACK):
        percentage += 6

    return min(percentage, 100)
