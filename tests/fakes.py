"""Test doubles shared across the test modules."""

from __future__ import annotations

import asyncio

from typing import TYPE_CHECKING, Any

from oauth1flow.auth.credential_store import CredentialStore
from oauth1flow.auth.transport import NetworkTransport
from oauth1flow.types import TransportResponse
from tests.constants import MAX_LOOP_SPINS


if TYPE_CHECKING:
    from collections.abc import Callable

    from oauth1flow.auth.session import SignInSession
    from oauth1flow.types import SignInPhase


def ok(body: str, status_code: int = 200) -> TransportResponse:
    """Build a scripted transport response."""
    return TransportResponse(status_code=status_code, body=body)


class ScriptedTransport(NetworkTransport):
    """NetworkTransport that replays queued responses and records requests.

    Each queued item is a ``TransportResponse`` to return or an exception
    to raise. ``hold(index)`` makes the request with that index wait until
    the returned event is set.
    """

    def __init__(self, *responses: TransportResponse | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[dict[str, Any]] = []
        self.closed = False
        self._gates: dict[int, asyncio.Event] = {}

    def hold(self, index: int) -> asyncio.Event:
        """Block request number ``index`` until the returned event is set."""
        gate = asyncio.Event()
        self._gates[index] = gate
        return gate

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: str | None = None,
    ) -> TransportResponse:
        index = len(self.requests)
        self.requests.append(
            {"method": method, "url": url, "headers": dict(headers or {}), "body": body}
        )
        gate = self._gates.get(index)
        if gate is not None:
            await gate.wait()
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        self.closed = True


class FakeSurface:
    """InteractiveSurface recording what the session asks it to do."""

    def __init__(self) -> None:
        self.loaded: list[str] = []
        self.html: list[str] = []
        self.close_count = 0
        self.on_load: Callable[[str], object] | None = None

    def load(self, url: str) -> None:
        self.loaded.append(url)
        if self.on_load is not None:
            self.on_load(url)

    def load_html(self, content: str) -> None:
        self.html.append(content)

    def close(self) -> None:
        self.close_count += 1


class BrokenCredentialStore(CredentialStore):
    """Credential store whose backend fails every operation."""

    def _read(self, key: str) -> str | None:
        raise OSError("vault locked")

    def _write(self, key: str, data: str) -> None:
        raise OSError("vault locked")

    def _erase(self, key: str) -> bool:
        raise OSError("vault locked")


class _FakeTimer:
    def __init__(self, when: float, callback: Callable[..., Any], args: tuple[Any, ...]) -> None:
        self.when = when
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Virtual clock providing ``call_later`` for the reachability monitor."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[_FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _FakeTimer:
        timer = _FakeTimer(self.now + delay, callback, args)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> list[_FakeTimer]:
        """Timers that are scheduled and not cancelled."""
        return [t for t in self._timers if not t.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running due timers in order."""
        target = self.now + seconds
        while True:
            due = [t for t in self.pending if t.when <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.when)
            self._timers.remove(timer)
            self.now = timer.when
            timer.callback(*timer.args)
        self._timers = self.pending
        self.now = target


async def wait_for_phase(session: SignInSession, phase: SignInPhase) -> None:
    """Spin the event loop until ``session`` reaches ``phase``."""
    for _ in range(MAX_LOOP_SPINS):
        if session.phase is phase:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"session stuck in {session.phase.value}, expected {phase.value}")


async def settle() -> None:
    """Let pending tasks run to their next suspension point."""
    for _ in range(20):
        await asyncio.sleep(0)

