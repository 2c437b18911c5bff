from .base import (
    BaseCourierAdapter,
    CreatedOrder,
    Quote,
    ShipmentPayload,
    TokenGrant,
    WebhookEvent,
)
from .registry import adapter_class_for, get_adapter, is_registered, register_adapter, registered_slugs

# Concrete couriers register themselves on import.
from . import hudhud, pathao, redx  # noqa: E402,F401

__all__ = [
    "BaseCourierAdapter",
    "CreatedOrder",
    "Quote",
    "ShipmentPayload",
    "TokenGrant",
    "WebhookEvent",
    "adapter_class_for",
    "get_adapter",
    "is_registered",
    "register_adapter",
    "registered_slugs",
]
