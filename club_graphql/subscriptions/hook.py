"""
Subscription hook.

Binds the subscription bridge to a component-style lifecycle: subscribe on
mount or enable, unsubscribe on unmount, disable or input change, and keep
the latest value, the latest error and a connected flag.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Tuple

from ..exceptions import SubscriptionError
from .bridge import (
    CompleteCallback,
    DataCallback,
    ErrorCallback,
    SubscriptionHandle,
    open_subscription,
)

if TYPE_CHECKING:
    from ..registry import ClientRegistry

logger = logging.getLogger(__name__)

_UNSET: Any = object()


@dataclass(frozen=True)
class SubscriptionHookState:
    """Read-only snapshot of a hook's observation state."""

    data: Any = None
    error: Optional[SubscriptionError] = None
    is_connected: bool = False


def _variables_key(variables: Optional[Mapping[str, Any]]) -> str:
    return json.dumps(variables, sort_keys=True, default=repr)


class SubscriptionHook:
    """
    At most one live subscription per instance.

    The hook is identified by its (document, variables) pair; variables are
    compared by canonical JSON, so an equal dict built anew does not
    resubscribe. Changing the identity while enabled cancels the current
    subscription before the next one is opened.

    Examples:
        ```python
        hook = SubscriptionHook(
            registry,
            "subscription TeeSheet($date: String!) { teeSheetUpdated(date: $date) { id } }",
            {"date": "2024-05-01"},
        )
        with hook:
            ...
            hook.update(variables={"date": "2024-05-02"})
            print(hook.data, hook.is_connected)
        ```
    """

    def __init__(
        self,
        registry: "ClientRegistry",
        document: str,
        variables: Optional[Mapping[str, Any]] = None,
        enabled: bool = True,
        on_data: Optional[DataCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
    ):
        self.registry = registry
        self._document = document
        self._variables = dict(variables) if variables is not None else None
        self._enabled = enabled
        self._on_data = on_data
        self._on_error = on_error
        self._on_complete = on_complete

        self._mounted = False
        self._handle: Optional[SubscriptionHandle] = None
        self._identity: Optional[Tuple[str, str]] = None
        self._generation = 0

        self._data: Any = None
        self._error: Optional[SubscriptionError] = None

    @property
    def data(self) -> Any:
        """Latest data payload, or None."""
        return self._data

    @property
    def error(self) -> Optional[SubscriptionError]:
        """Latest normalized error, or None."""
        return self._error

    @property
    def is_connected(self) -> bool:
        """Whether the held subscription is still live."""
        return self._handle is not None and self._handle.live

    @property
    def state(self) -> SubscriptionHookState:
        return SubscriptionHookState(
            data=self._data, error=self._error, is_connected=self.is_connected
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def handle(self) -> Optional[SubscriptionHandle]:
        """Handle of the current subscription, if one is held."""
        return self._handle

    def mount(self) -> None:
        """Start observing. Opens a subscription when enabled."""
        if self._mounted:
            return
        self._mounted = True
        self._sync()

    def update(
        self,
        document: str = _UNSET,
        variables: Optional[Mapping[str, Any]] = _UNSET,
        enabled: bool = _UNSET,
        on_data: Optional[DataCallback] = _UNSET,
        on_error: Optional[ErrorCallback] = _UNSET,
        on_complete: Optional[CompleteCallback] = _UNSET,
    ) -> None:
        """
        Apply new inputs, resubscribing only when the identity changed.

        Callbacks can be swapped without resubscribing; the new ones receive
        subsequent events of the current subscription.
        """
        if document is not _UNSET:
            self._document = document
        if variables is not _UNSET:
            self._variables = dict(variables) if variables is not None else None
        if enabled is not _UNSET:
            self._enabled = enabled
        if on_data is not _UNSET:
            self._on_data = on_data
        if on_error is not _UNSET:
            self._on_error = on_error
        if on_complete is not _UNSET:
            self._on_complete = on_complete

        if self._mounted:
            self._sync()

    def unmount(self) -> None:
        """Stop observing and cancel the held subscription."""
        if not self._mounted:
            return
        self._mounted = False
        self._teardown()

    def __enter__(self) -> "SubscriptionHook":
        self.mount()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.unmount()

    def _current_identity(self) -> Tuple[str, str]:
        return self._document, _variables_key(self._variables)

    def _sync(self) -> None:
        if not self._enabled:
            self._teardown()
            self._identity = None
            self._data = None
            self._error = None
            return

        identity = self._current_identity()
        if self._handle is not None and identity == self._identity:
            return

        self._teardown()
        self._open(identity)

    def _open(self, identity: Tuple[str, str]) -> None:
        self._generation += 1
        generation = self._generation
        self._identity = identity
        self._data = None
        self._error = None

        def on_data(data: Any) -> None:
            if generation != self._generation:
                return
            self._data = data
            self._error = None
            if self._on_data is not None:
                self._on_data(data)

        def on_error(error: SubscriptionError) -> None:
            if generation != self._generation:
                return
            self._error = error
            if self._on_error is not None:
                self._on_error(error)

        def on_complete() -> None:
            if generation != self._generation:
                return
            if self._on_complete is not None:
                self._on_complete()

        handle = open_subscription(
            self.registry,
            self._document,
            self._variables,
            on_data=on_data,
            on_error=on_error,
            on_complete=on_complete,
        )
        self._handle = handle
        logger.debug(f"Hook subscription opened (generation {generation})")

    def _teardown(self) -> None:
        handle = self._handle
        self._handle = None
        # Invalidate callbacks of the subscription being dropped
        self._generation += 1
        if handle is not None:
            handle.cancel()
