from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator, MutableMapping
from pathlib import Path
from typing import Generic, TypeVar

from nepshift.errors import ConflictError
from nepshift.models import (
    ApplicationStatus,
    ChatMessage,
    Notification,
    Review,
    Role,
    Shift,
    ShiftApplication,
    ShiftTransition,
    User,
    VerificationProfile,
    WorkerProfile,
)

K = TypeVar("K")
V = TypeVar("V")


class InMemoryKeyValueDatabase(Generic[K, V]):
    """
    Simple in-memory key/value database.
    """

    def __init__(self) -> None:
        self._store: MutableMapping[K, V] = {}

    def put(self, key: K, value: V) -> None:
        self._store[key] = value

    def get(self, key: K) -> V | None:
        return self._store.get(key)

    def delete(self, key: K) -> None:
        self._store.pop(key, None)

    def all(self) -> list[V]:
        return list(self._store.values())

    def clear(self) -> None:
        self._store.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._store

    def __iter__(self) -> Iterator[V]:
        return iter(self._store.values())

    def __len__(self) -> int:
        return len(self._store)


class Database:
    """
    Container for all tables plus the uniqueness constraints between them.

    Constraint checks happen on insert, so two racing writers cannot both
    pass a read-then-write check.
    """

    def __init__(self) -> None:
        self.users: InMemoryKeyValueDatabase[str, User] = InMemoryKeyValueDatabase()
        self.verifications: InMemoryKeyValueDatabase[str, VerificationProfile] = (
            InMemoryKeyValueDatabase()
        )
        self.worker_profiles: InMemoryKeyValueDatabase[str, WorkerProfile] = (
            InMemoryKeyValueDatabase()
        )
        self.shifts: InMemoryKeyValueDatabase[str, Shift] = InMemoryKeyValueDatabase()
        self.applications: InMemoryKeyValueDatabase[str, ShiftApplication] = (
            InMemoryKeyValueDatabase()
        )
        self.reviews: InMemoryKeyValueDatabase[str, Review] = (
            InMemoryKeyValueDatabase()
        )
        self.notifications: InMemoryKeyValueDatabase[str, Notification] = (
            InMemoryKeyValueDatabase()
        )
        self.messages: InMemoryKeyValueDatabase[str, ChatMessage] = (
            InMemoryKeyValueDatabase()
        )
        self.transitions: dict[str, list[ShiftTransition]] = {}

        # (shift_id, worker_id) -> id of the non-rejected application
        self._active_bids: dict[tuple[str, str], str] = {}
        # (shift_id, author_id) -> review id
        self._review_keys: dict[tuple[str, str], str] = {}

        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    def clear(self) -> None:
        for table in (
            self.users,
            self.verifications,
            self.worker_profiles,
            self.shifts,
            self.applications,
            self.reviews,
            self.notifications,
            self.messages,
        ):
            table.clear()
        self.transitions.clear()
        self._active_bids.clear()
        self._review_keys.clear()
        self._locks.clear()

    async def get_lock(self, key: str) -> asyncio.Lock:
        """Get or create a lock for a specific entity to serialize its updates."""
        async with self._locks_lock:
            if key not in self._locks:
                self._locks[key] = asyncio.Lock()
            return self._locks[key]

    # Users

    def get_users_by_role(self, role: Role) -> list[User]:
        """Get all users with a specific role."""
        return [user for user in self.users.all() if user.role == role]

    # Applications

    def insert_application(self, application: ShiftApplication) -> None:
        """Store a new application, enforcing one active bid per worker and shift."""
        key = (application.shift_id, application.worker_id)
        if key in self._active_bids:
            raise ConflictError("You already applied for this shift")
        self._active_bids[key] = application.id
        self.applications.put(application.id, application)

    def update_application(self, application: ShiftApplication) -> None:
        key = (application.shift_id, application.worker_id)
        if application.status == ApplicationStatus.REJECTED:
            if self._active_bids.get(key) == application.id:
                del self._active_bids[key]
        self.applications.put(application.id, application)

    def get_applications_for_shift(self, shift_id: str) -> list[ShiftApplication]:
        apps = [a for a in self.applications.all() if a.shift_id == shift_id]
        return sorted(apps, key=lambda a: a.applied_at)

    def get_applications_for_worker(self, worker_id: str) -> list[ShiftApplication]:
        apps = [a for a in self.applications.all() if a.worker_id == worker_id]
        return sorted(apps, key=lambda a: a.applied_at, reverse=True)

    def get_active_application(
        self, shift_id: str, worker_id: str
    ) -> ShiftApplication | None:
        application_id = self._active_bids.get((shift_id, worker_id))
        if application_id is None:
            return None
        return self.applications.get(application_id)

    # Reviews

    def insert_review(self, review: Review) -> None:
        """Store a review, enforcing one review per author and shift."""
        key = (review.shift_id, review.author_id)
        if key in self._review_keys:
            raise ConflictError("You have already reviewed this shift")
        self._review_keys[key] = review.id
        self.reviews.put(review.id, review)

    def has_reviewed(self, shift_id: str, author_id: str) -> bool:
        return (shift_id, author_id) in self._review_keys

    def get_reviews_for_subject(self, subject_id: str) -> list[Review]:
        reviews = [r for r in self.reviews.all() if r.subject_id == subject_id]
        return sorted(reviews, key=lambda r: r.created_at, reverse=True)

    # Shift audit log

    def record_transition(self, transition: ShiftTransition) -> None:
        self.transitions.setdefault(transition.shift_id, []).append(transition)

    def get_transitions(self, shift_id: str) -> list[ShiftTransition]:
        return list(self.transitions.get(shift_id, []))

    # Chat

    def insert_message(self, message: ChatMessage) -> ChatMessage:
        """Store a chat message; a redelivered id returns the stored copy."""
        existing = self.messages.get(message.id)
        if existing is not None:
            return existing
        self.messages.put(message.id, message)
        return message

    def get_messages_in_chat(self, chat_id: str) -> list[ChatMessage]:
        messages = [m for m in self.messages.all() if m.chat_id == chat_id]
        return sorted(messages, key=lambda m: (m.created_at, m.id))


_db: Database | None = None


def get_db() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


def load_sample_data(db: Database | None = None) -> None:
    """Load sample data from sample_data.json into the database."""
    if db is None:
        db = get_db()

    sample_data_path = Path(__file__).parent.parent / "sample_data.json"
    with open(sample_data_path) as f:
        data = json.load(f)

    for user_data in data["users"]:
        user = User(**user_data)
        db.users.put(user.id, user)

    for profile_data in data["verification_profiles"]:
        profile = VerificationProfile(**profile_data)
        db.verifications.put(profile.user_id, profile)

    for worker_data in data["worker_profiles"]:
        worker = WorkerProfile(**worker_data)
        db.worker_profiles.put(worker.user_id, worker)

    for shift_data in data["shifts"]:
        shift = Shift(**shift_data)
        db.shifts.put(shift.id, shift)
