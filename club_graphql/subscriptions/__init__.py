"""
GraphQL subscriptions for club_graphql.

This module provides the subscription bridge over the socket client, error
normalization and the lifecycle-bound subscription hook.
"""

from .bridge import (
    SubscriptionHandle,
    SubscriptionState,
    open_subscription,
    subscribe_iter,
)
from .errors import ErrorShape, classify_error_shape, normalize_subscription_error
from .hook import SubscriptionHook, SubscriptionHookState

__all__ = [
    "SubscriptionHandle",
    "SubscriptionState",
    "open_subscription",
    "subscribe_iter",
    "ErrorShape",
    "classify_error_shape",
    "normalize_subscription_error",
    "SubscriptionHook",
    "SubscriptionHookState",
]
