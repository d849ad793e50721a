from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Iterator, List, Protocol, Sequence, Tuple

from launchcurve.runtime.errors import CurveError


class Snapshottable(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snap: Any) -> None: ...


class UnitOfWork:
    """All-or-nothing execution across every stateful participant.

    The outermost atomic() snapshots each participant, and restores all of
    them in reverse order if anything raises. Nested atomic() blocks join the
    outer one. Participants exposing commit() are committed (persisted) only
    once the outermost block has completed.
    """

    def __init__(self, participants: Sequence[Snapshottable]) -> None:
        self._participants: List[Snapshottable] = list(participants)
        self._depth = 0
        self._lock = threading.RLock()

    def add(self, participant: Snapshottable) -> None:
        self._participants.append(participant)

    @property
    def active(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            if self._depth > 0:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snaps: List[Tuple[Snapshottable, Any]] = [(p, p.snapshot()) for p in self._participants]
            self._depth = 1
            try:
                yield
                for p in self._participants:
                    commit = getattr(p, "commit", None)
                    if callable(commit):
                        commit()
            except BaseException:
                for p, snap in reversed(snaps):
                    p.restore(snap)
                raise
            finally:
                self._depth = 0


class ReentrancyGuard:
    """Explicit in-progress flag around calls that move value.

    Calls from other threads wait on the lock and then run serialized. A
    settlement hook on the same thread that calls back into a guarded entry
    point is rejected, never queued. The flag is cleared on every exit path.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._active = ""

    @property
    def entered(self) -> bool:
        return bool(self._active)

    @contextmanager
    def enter(self, op: str) -> Iterator[None]:
        with self._lock:
            if self._active:
                raise CurveError("reentrancy", "reentrant_call", {"op": op, "active": self._active})
            self._active = str(op) or "call"
            try:
                yield
            finally:
                self._active = ""
