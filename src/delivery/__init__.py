from .engine import WebhookDeliveryEngine
from .executor import DeliveryExecutor
from .logger import DeliveryLogger
from .retry import RetryPolicy
from .scheduler import RetryScheduler
from .signer import build_body, sign

__all__ = [
    "WebhookDeliveryEngine",
    "DeliveryExecutor",
    "DeliveryLogger",
    "RetryPolicy",
    "RetryScheduler",
    "build_body",
    "sign",
]
