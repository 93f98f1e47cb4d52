"""Display metadata per message type (icon, color, label)."""
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

from comms_service.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class TypeDisplay:
    icon: str
    color: str
    label: str


MESSAGE_TYPE_DISPLAY: Mapping[MessageType, TypeDisplay] = MappingProxyType({
    MessageType.INCIDENT: TypeDisplay(icon="incident", color="#e53935", label="Incident"),
    MessageType.ATTENDANCE: TypeDisplay(icon="attendance", color="#1e88e5", label="Attendance"),
    MessageType.ANNOUNCEMENT: TypeDisplay(icon="announcement", color="#43a047", label="Announcement"),
    MessageType.DAILY_RECORD: TypeDisplay(icon="assignment", color="#fb8c00", label="Daily record"),
    MessageType.CHAT: TypeDisplay(icon="chat", color="#8e24aa", label="Chat"),
    MessageType.NOTIFICATION: TypeDisplay(icon="notifications", color="#546e7a", label="Notification"),
    MessageType.SYSTEM: TypeDisplay(icon="system_update", color="#757575", label="System"),
})


def display_for(message_type: MessageType) -> TypeDisplay:
    return MESSAGE_TYPE_DISPLAY[message_type]
