from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Sequence

from comms_service.application.dto.message import (
    ComposeMessageDTO,
    RecipientOutcome,
    SendResult,
)
from comms_service.application.exceptions import NotFoundError, ValidationError
from comms_service.application.policies.permissions import assert_message_access
from comms_service.application.ports.clock import Clock, MonotonicClock
from comms_service.application.ports.identity import UserDirectory
from comms_service.application.ports.notifier import NotificationDispatcher
from comms_service.application.repositories.message import MessageStore
from comms_service.domain.entities.message import Attachment, Message
from comms_service.domain.value_objects.enums import (
    MessagePriority,
    MessageStatus,
    MessageType,
)
from comms_service.domain.value_objects.ids import new_message_id

logger = logging.getLogger(__name__)

REPLY_PREFIX = "RE: "
DEFAULT_PREVIEW_CHARS = 100


def reply_title(title: str) -> str:
    """Prefix ``title`` with "RE: " unless it already carries the prefix."""
    if title.lstrip()[:3].upper() == REPLY_PREFIX.strip():
        return title
    return f"{REPLY_PREFIX}{title}"


def _unique_recipients(recipient_ids: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for rid in recipient_ids:
        rid = rid.strip()
        if rid:
            seen.setdefault(rid, None)
    return tuple(seen)


def _preview(content: str, limit: int) -> str:
    text = " ".join(content.split())
    if len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"


class ComposeService:
    """Validates outgoing messages and writes one record per recipient."""

    def __init__(
        self,
        current_user_id: str,
        store: MessageStore,
        notifier: NotificationDispatcher,
        users: UserDirectory,
        clock: Clock | None = None,
        preview_chars: int = DEFAULT_PREVIEW_CHARS,
    ) -> None:
        self._user_id = current_user_id
        self._store = store
        self._notifier = notifier
        self._users = users
        self._clock = MonotonicClock(clock)
        self._preview_chars = preview_chars

    @property
    def current_user_id(self) -> str:
        return self._user_id

    async def send(self, dto: ComposeMessageDTO) -> SendResult:
        """Persist ``dto`` for every recipient.

        Validation errors are raised before anything is written. Store
        failures do not raise: they are reported per recipient so the caller
        can retry just the failed ones.
        """
        if not dto.title.strip():
            raise ValidationError("Title must not be blank")
        if not dto.content.strip():
            raise ValidationError("Content must not be blank")

        recipients = _unique_recipients(dto.recipient_ids)
        if not recipients and not dto.reply_to_id:
            raise ValidationError("At least one recipient is required")
        if dto.reply_to_id:
            # The quoted message must exist and be visible to the sender.
            original = await self._get_original(dto.reply_to_id)
            if not recipients:
                recipients = (self._reply_target(original),)

        sender_name = await self._users.resolve_user_name(self._user_id)
        timestamp = self._clock.now()

        outcomes: list[RecipientOutcome] = []
        for recipient_id in recipients:
            message = Message(
                id=new_message_id(),
                type=dto.type,
                priority=dto.priority,
                title=dto.title,
                content=dto.content,
                sender_id=self._user_id,
                sender_name=sender_name,
                receiver_id=recipient_id,
                receiver_ids=(),
                timestamp=timestamp,
                status=MessageStatus.UNREAD,
                conversation_id=dto.conversation_id,
                reply_to_id=dto.reply_to_id,
                context_id=dto.context_id,
                context_type=dto.context_type,
                attachments=tuple(dto.attachments),
                metadata=dict(dto.metadata),
            )
            try:
                stored_id = await self._store.put(message)
            except Exception as exc:
                logger.exception(
                    "Failed to store message for recipient %s (sender=%s)",
                    recipient_id, self._user_id,
                )
                outcomes.append(RecipientOutcome(recipient_id=recipient_id, error=str(exc) or type(exc).__name__))
                continue

            if stored_id and stored_id != message.id:
                message = replace(message, id=stored_id)
            outcomes.append(RecipientOutcome(recipient_id=recipient_id, message=message))
            await self._dispatch(message)

        result = SendResult(outcomes=tuple(outcomes))
        if result.all_succeeded:
            logger.info(
                "Sent %s message from %s to %d recipient(s)",
                dto.type, self._user_id, len(outcomes),
            )
        else:
            logger.warning(
                "Send from %s reached %d of %d recipient(s); failed: %s",
                self._user_id,
                len(result.messages),
                len(outcomes),
                ", ".join(result.failed_recipients),
            )
        return result

    async def reply(
        self,
        original_id: str,
        content: str,
        *,
        title: str | None = None,
        message_type: MessageType = MessageType.CHAT,
        priority: MessagePriority = MessagePriority.NORMAL,
        attachments: Sequence[Attachment] = (),
    ) -> SendResult:
        original = await self._get_original(original_id)
        dto = ComposeMessageDTO(
            title=reply_title(title if title is not None else original.title),
            content=content,
            recipient_ids=(self._reply_target(original),),
            type=message_type,
            priority=priority,
            attachments=tuple(attachments),
            conversation_id=original.conversation_id,
            reply_to_id=original.id,
            context_id=original.context_id,
            context_type=original.context_type,
        )
        return await self.send(dto)

    async def send_announcement(
        self,
        title: str,
        content: str,
        recipient_ids: Sequence[str],
        *,
        priority: MessagePriority = MessagePriority.NORMAL,
        require_confirmation: bool = False,
        receiver_types: Sequence[str] = (),
        attachments: Sequence[Attachment] = (),
    ) -> SendResult:
        metadata = {
            "requireConfirmation": "true" if require_confirmation else "false",
            "receiverTypes": ",".join(receiver_types),
        }
        dto = ComposeMessageDTO(
            title=title,
            content=content,
            recipient_ids=tuple(recipient_ids),
            type=MessageType.ANNOUNCEMENT,
            priority=priority,
            attachments=tuple(attachments),
            metadata=metadata,
        )
        return await self.send(dto)

    async def _get_original(self, message_id: str | None) -> Message:
        original = await self._store.get_by_id(message_id) if message_id else None
        if original is None:
            raise NotFoundError("Original message not found")
        return assert_message_access(self._user_id, original)

    def _reply_target(self, original: Message) -> str:
        if original.sender_id != self._user_id:
            return original.sender_id
        # Replying to something we sent ourselves goes back to its recipient.
        if original.receiver_id:
            return original.receiver_id
        raise ValidationError("Cannot infer a recipient for this reply")

    async def _dispatch(self, message: Message) -> None:
        try:
            await self._notifier.notify(
                message.receiver_id,
                message.title,
                _preview(message.content, self._preview_chars),
            )
        except Exception:
            logger.warning(
                "Notification dispatch failed for message %s (recipient=%s)",
                message.id, message.receiver_id,
                exc_info=True,
            )
