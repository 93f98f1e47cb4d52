from __future__ import annotations

from enum import StrEnum


class MessageType(StrEnum):
    CHAT = "chat"
    ANNOUNCEMENT = "announcement"
    NOTIFICATION = "notification"
    INCIDENT = "incident"
    ATTENDANCE = "attendance"
    DAILY_RECORD = "daily_record"
    SYSTEM = "system"


class MessagePriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class MessageStatus(StrEnum):
    UNREAD = "unread"
    READ = "read"


class InboxStatus(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
