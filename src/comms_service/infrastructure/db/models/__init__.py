"""Import all models so Base.metadata knows every table."""
from comms_service.infrastructure.db.models.message import MessageModel
from comms_service.infrastructure.db.models.user import UserModel

__all__ = [
    "MessageModel",
    "UserModel",
]
