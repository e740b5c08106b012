"""Session-scoped assembly of truncated fragments into complete documents."""
from __future__ import annotations

import logging
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterator, Optional

from diagram_stream.errors import AssemblyAbandoned, DiagramEngineError, FreshStartRejected, UnknownContinuation
from diagram_stream.services import tool_messages
from diagram_stream.tools.completeness import is_complete
from diagram_stream.utils.config import settings

logger = logging.getLogger(__name__)

_SCAFFOLD_PREFIXES = ("<mxfile", "<diagram", "<mxgraphmodel", "<root", "<?xml")
_RESERVED_FIRST_CELL = re.compile(r"""^<mxCell\b[^>]*?\bid\s*=\s*["'](?:0|1)["']""")


class AssemblyStatus(str, Enum):
    COMPLETE = "complete"
    TRUNCATED = "truncated"
    REJECTED = "rejected"
    ABANDONED = "abandoned"
    NO_PENDING = "no_pending"


@dataclass
class PendingAssembly:
    session_key: str
    buffer: str
    rounds: int = 0
    created_at: float = 0.0
    updated_at: float = 0.0


@dataclass
class AssemblyOutcome:
    status: AssemblyStatus
    session_key: str
    text: Optional[str] = None
    resume_point: Optional[str] = None
    rounds: int = 0
    message: Optional[str] = None
    error: Optional[DiagramEngineError] = None

    @property
    def complete(self) -> bool:
        return self.status is AssemblyStatus.COMPLETE


def is_fresh_start(fragment: str) -> bool:
    """True when a continuation restarts the document instead of resuming it."""
    trimmed = (fragment or "").strip()
    if trimmed.lower().startswith(_SCAFFOLD_PREFIXES):
        return True
    return bool(_RESERVED_FIRST_CELL.match(trimmed))


class FragmentAssembler:
    """Accumulates continuation fragments per session until they form a document.

    State machine per session key: Empty -> Accumulating -> Complete, with
    Accumulating -> Rejected (continuation discarded, buffer kept) and
    Accumulating -> Abandoned once ``max_rounds`` continuations have not
    produced a complete document.
    """

    def __init__(
        self,
        max_rounds: Optional[int] = None,
        resume_tail_chars: Optional[int] = None,
        ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_rounds = settings.max_assembly_rounds if max_rounds is None else max_rounds
        self.resume_tail_chars = settings.resume_tail_chars if resume_tail_chars is None else resume_tail_chars
        self.ttl_seconds = settings.assembly_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._pending: Dict[str, PendingAssembly] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._registry_lock = threading.Lock()

    @contextmanager
    def _session_lock(self, session_key: str) -> Iterator[None]:
        with self._registry_lock:
            lock = self._locks.setdefault(session_key, threading.Lock())
            self._lock_users[session_key] = self._lock_users.get(session_key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._registry_lock:
                users = self._lock_users[session_key] - 1
                if users == 0 and session_key not in self._pending:
                    del self._lock_users[session_key]
                    del self._locks[session_key]
                else:
                    self._lock_users[session_key] = users

    def _resume_point(self, buffer: str) -> str:
        return buffer[-self.resume_tail_chars:] if self.resume_tail_chars else buffer

    def _expired(self, pending: PendingAssembly) -> bool:
        return self.ttl_seconds > 0 and self._clock() - pending.updated_at > self.ttl_seconds

    def _live_pending(self, session_key: str) -> Optional[PendingAssembly]:
        pending = self._pending.get(session_key)
        if pending is not None and self._expired(pending):
            logger.info("Pending assembly expired", extra={"session_key": session_key})
            del self._pending[session_key]
            return None
        return pending

    def pending(self, session_key: str) -> Optional[PendingAssembly]:
        with self._session_lock(session_key):
            return self._live_pending(session_key)

    def discard(self, session_key: str) -> bool:
        with self._session_lock(session_key):
            return self._pending.pop(session_key, None) is not None

    def sweep_expired(self) -> int:
        with self._registry_lock:
            keys = list(self._pending.keys())
        removed = 0
        for key in keys:
            with self._session_lock(key):
                pending = self._pending.get(key)
                if pending is not None and self._expired(pending):
                    del self._pending[key]
                    removed += 1
        return removed

    def start(self, session_key: str, fragment: str) -> AssemblyOutcome:
        """Begin a generation; replaces any assembly left pending for the key."""
        with self._session_lock(session_key):
            if self._pending.pop(session_key, None) is not None:
                logger.info("Pending assembly replaced by a new generation", extra={"session_key": session_key})

            if is_complete(fragment):
                return AssemblyOutcome(AssemblyStatus.COMPLETE, session_key, text=fragment)

            now = self._clock()
            self._pending[session_key] = PendingAssembly(
                session_key=session_key, buffer=fragment, created_at=now, updated_at=now
            )
            resume_point = self._resume_point(fragment)
            logger.info(
                "Fragment truncated; awaiting continuation",
                extra={"session_key": session_key, "buffer_chars": len(fragment)},
            )
            return AssemblyOutcome(
                AssemblyStatus.TRUNCATED,
                session_key,
                resume_point=resume_point,
                message=tool_messages.truncated_message(resume_point),
            )

    def resume(self, session_key: str, fragment: str) -> AssemblyOutcome:
        """Append a continuation fragment to the session's pending buffer."""
        with self._session_lock(session_key):
            pending = self._live_pending(session_key)
            if pending is None:
                error = UnknownContinuation(f"No pending assembly for session '{session_key}'")
                return AssemblyOutcome(
                    AssemblyStatus.NO_PENDING,
                    session_key,
                    message=tool_messages.no_pending_message(),
                    error=error,
                )

            pending.rounds += 1
            pending.updated_at = self._clock()

            if is_fresh_start(fragment):
                if pending.rounds >= self.max_rounds:
                    return self._abandon(pending)
                resume_point = self._resume_point(pending.buffer)
                return AssemblyOutcome(
                    AssemblyStatus.REJECTED,
                    session_key,
                    resume_point=resume_point,
                    rounds=pending.rounds,
                    message=tool_messages.fresh_start_message(resume_point),
                    error=FreshStartRejected("Continuation restarted the document with scaffold markup"),
                )

            pending.buffer += fragment
            if is_complete(pending.buffer):
                del self._pending[session_key]
                logger.info(
                    "Assembly complete",
                    extra={"session_key": session_key, "rounds": pending.rounds},
                )
                return AssemblyOutcome(
                    AssemblyStatus.COMPLETE, session_key, text=pending.buffer, rounds=pending.rounds
                )

            if pending.rounds >= self.max_rounds:
                return self._abandon(pending)

            resume_point = self._resume_point(pending.buffer)
            return AssemblyOutcome(
                AssemblyStatus.TRUNCATED,
                session_key,
                resume_point=resume_point,
                rounds=pending.rounds,
                message=tool_messages.still_incomplete_message(resume_point, pending.rounds, self.max_rounds),
            )

    def _abandon(self, pending: PendingAssembly) -> AssemblyOutcome:
        del self._pending[pending.session_key]
        logger.warning(
            "Assembly abandoned",
            extra={"session_key": pending.session_key, "rounds": pending.rounds},
        )
        return AssemblyOutcome(
            AssemblyStatus.ABANDONED,
            pending.session_key,
            rounds=pending.rounds,
            message=tool_messages.abandoned_message(pending.rounds),
            error=AssemblyAbandoned(f"Assembly abandoned after {pending.rounds} rounds"),
        )


assembler = FragmentAssembler()
