from .registry import SubscriptionRegistry

__all__ = ["SubscriptionRegistry"]
