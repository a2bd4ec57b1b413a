"""Network-loss watchdog for the interactive sign-in step.

While the user is on the provider's pages, the monitor fires a
"network lost" notification after ``interval`` seconds without any
observed network activity. The notification is informational only; the
sign-in session keeps running.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import asyncio
import logging

from typing import TYPE_CHECKING, Any, Protocol


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger("oauth1flow.reachability")

DEFAULT_NETWORK_LOSS_TIMEOUT = 30.0


class TimerHandle(Protocol):
    """Cancellable handle returned by ``call_later``."""

    def cancel(self) -> None:
        """Cancel the scheduled call."""


class Scheduler(Protocol):
    """The part of an event loop the monitor needs."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle:
        """Schedule ``callback`` after ``delay`` seconds."""


class ReachabilityMonitor:
    """Fires ``on_network_lost`` after a sustained lack of network activity.

    A single timer is armed on ``start()`` and re-armed on every
    ``record_activity()`` and after every firing, so at most one
    notification is emitted per uninterrupted interval. ``stop()`` cancels
    the timer and no notification can fire afterwards.

    Parameters
    ----------
    interval : float
        Seconds of inactivity before the notification (default ``30``).
        ``0`` disables monitoring.
    on_network_lost : callable, optional
        Called with no arguments each time the interval elapses.
    loop : Scheduler, optional
        Object providing ``call_later``; the running asyncio loop when
        omitted.
    """

    def __init__(
        self,
        interval: float = DEFAULT_NETWORK_LOSS_TIMEOUT,
        on_network_lost: Callable[[], None] | None = None,
        loop: Scheduler | None = None,
    ) -> None:
        """Initialize the monitor."""
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self.on_network_lost = on_network_lost
        self._loop = loop
        self._handle: TimerHandle | None = None
        self._running = False
        self.fire_count = 0

    @property
    def enabled(self) -> bool:
        """Whether monitoring is enabled at all."""
        return self.interval > 0

    @property
    def is_running(self) -> bool:
        """Whether the monitor is between ``start()`` and ``stop()``."""
        return self._running

    def start(self) -> None:
        """Begin watching. No-op when disabled or already running."""
        if not self.enabled or self._running:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._running = True
        self._arm()
        logger.debug("Reachability monitor started (interval=%ss)", self.interval)

    def stop(self) -> None:
        """Stop watching and cancel the pending timer."""
        if not self._running:
            return
        self._running = False
        self._cancel_timer()
        logger.debug("Reachability monitor stopped")

    def record_activity(self) -> None:
        """Reset the inactivity timer after successful network activity."""
        if self._running:
            self._arm()

    def _arm(self) -> None:
        self._cancel_timer()
        assert self._loop is not None  # noqa: S101
        self._handle = self._loop.call_later(self.interval, self._fire)

    def _cancel_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        if not self._running:
            return
        self.fire_count += 1
        logger.warning("No network activity for %ss during sign-in", self.interval)
        # Re-arm before notifying so a listener calling stop() wins
        self._arm()
        if self.on_network_lost is not None:
            self.on_network_lost()
