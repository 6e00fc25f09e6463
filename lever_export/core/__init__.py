"""Core module - contains enums and configuration."""
from .enums import FailureKind, SubResourceKind, TriggerType
from .config import settings

__all__ = [
    "FailureKind",
    "SubResourceKind",
    "TriggerType",
    "settings",
]
