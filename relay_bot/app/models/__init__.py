from .tenant import Tenant
from .message import Message, Direction

__all__ = [
    "Tenant",
    "Message", "Direction",
]
