"""Append-only message threads: container chat and work item comments.

Both threads share the same rules: a non-blank message, attribution to the
actor, a server-side timestamp, ascending order. There is no edit or delete.
"""
import logging
from datetime import datetime
from typing import Optional

from .errors import ValidationError
from .models import ChatMessage, Comment, Container, WorkItem
from .permissions import Actor

logger = logging.getLogger("delivery-core.threads")


def require_message(message: Optional[str]) -> str:
    """
    Return the stripped message.

    Raises:
        ValidationError: If the message is missing or blank
    """
    text = (message or "").strip()
    if not text:
        raise ValidationError("Message is required", details={"message": "blank"})
    return text


def post_chat_message(
    container: Container,
    actor: Actor,
    message: Optional[str],
    now: datetime,
    attachments: Optional[list[str]] = None,
) -> ChatMessage:
    """Append a chat message to the container's thread."""
    entry = ChatMessage(
        user_id=actor.user_id,
        user_name=actor.name,
        message=require_message(message),
        timestamp=now,
        attachments=list(attachments or []),
    )
    container.chat.append(entry)
    logger.debug(f"Chat message by {actor.user_id} on {container.number}")
    return entry


def post_comment(work_item: WorkItem, actor: Actor, message: Optional[str], now: datetime) -> Comment:
    """Append a comment to the work item's thread."""
    entry = Comment(
        user_id=actor.user_id,
        user_name=actor.name,
        message=require_message(message),
        created_at=now,
    )
    work_item.comments.append(entry)
    logger.debug(f"Comment by {actor.user_id} on work item {work_item.id}")
    return entry


def ordered(entries: list, key: str) -> list:
    """Entries sorted ascending by ``key``; insertion order breaks ties."""
    return sorted(entries, key=lambda e: getattr(e, key))
