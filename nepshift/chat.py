"""
Chat between a hirer and a worker.

Delivery is at-least-once, so every path de-duplicates by message id and
orders by server timestamp rather than arrival order.
"""

import logging
from collections.abc import Iterable

from nepshift.database import Database
from nepshift.errors import NotFoundError, ValidationError
from nepshift.models import ChatMessage, User

logger = logging.getLogger(__name__)


def chat_room_id(user_id: str, other_id: str) -> str:
    """Room name shared by two users, the same whichever side asks."""
    return "_".join(sorted((user_id, other_id)))


def send_message(
    db: Database,
    sender: User,
    receiver_id: str,
    text: str,
    message_id: str | None = None,
) -> ChatMessage:
    """
    Store a message. Resending with the same ``message_id`` returns the
    stored message instead of creating a duplicate.
    """
    text = text.strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if receiver_id == sender.id:
        raise ValidationError("You cannot message yourself")
    if receiver_id not in db.users:
        raise NotFoundError(f"User {receiver_id} not found")

    fields = {
        "chat_id": chat_room_id(sender.id, receiver_id),
        "sender_id": sender.id,
        "receiver_id": receiver_id,
        "sender_role": sender.role,
        "message": text,
    }
    if message_id is not None:
        fields["id"] = message_id

    message = db.insert_message(ChatMessage(**fields))
    logger.debug("Message stored | chat=%s | id=%s", message.chat_id, message.id)
    return message


def get_chat_messages(db: Database, user_id: str, other_id: str) -> list[ChatMessage]:
    return db.get_messages_in_chat(chat_room_id(user_id, other_id))


def merge_incoming(
    existing: Iterable[ChatMessage], incoming: Iterable[ChatMessage]
) -> list[ChatMessage]:
    """Merge a redelivered or echoed batch into a displayed history."""
    by_id = {message.id: message for message in existing}
    for message in incoming:
        by_id.setdefault(message.id, message)
    return sorted(by_id.values(), key=lambda m: (m.created_at, m.id))


def mark_messages_as_read(db: Database, user: User, chat_id: str) -> int:
    """Mark everything addressed to user in a room as read; returns the count."""
    updated = 0
    for message in db.get_messages_in_chat(chat_id):
        if message.receiver_id == user.id and not message.is_read:
            message.is_read = True
            db.messages.put(message.id, message)
            updated += 1
    return updated


def unread_count(db: Database, user: User) -> int:
    return sum(
        1 for m in db.messages.all() if m.receiver_id == user.id and not m.is_read
    )
