"""Subscription bookkeeping shared by the record source adapters."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass

from sendvision.core.ports import ChangeCallback

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``subscribe``; hashable so it can key a dict."""

    subscription_id: int
    collection: str


class SubscriptionRegistry:
    """Tracks change callbacks per collection and fans signals out."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._callbacks: dict[Subscription, ChangeCallback] = {}

    def add(self, collection: str, on_change: ChangeCallback) -> Subscription:
        subscription = Subscription(next(self._ids), collection)
        self._callbacks[subscription] = on_change
        return subscription

    def remove(self, subscription: Subscription) -> None:
        self._callbacks.pop(subscription, None)

    def collections(self) -> set[str]:
        return {subscription.collection for subscription in self._callbacks}

    def notify(self, collection: str) -> None:
        for subscription, callback in list(self._callbacks.items()):
            if subscription.collection != collection:
                continue
            try:
                callback()
            except Exception:
                LOGGER.exception("Change callback failed for %s", collection)

    def __len__(self) -> int:
        return len(self._callbacks)
