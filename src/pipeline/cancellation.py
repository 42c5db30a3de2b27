"""
Cooperative cancellation for batch runs.

A ``CancellationToken`` belongs to exactly one job. The scheduler resets it
when a run starts and polls it between steps. ``CancellationRegistry``
keeps the tokens of live jobs so an out-of-band request (the HTTP cancel
endpoint, a Ctrl-C handler) can reach them while the job's own connection
is busy streaming progress.
"""

import threading
from typing import Optional

from src.utils.logger import get_logger

logger = get_logger(__name__)


class GenerationCancelled(Exception):
    """Raised inside a topic when its job's token was set mid-flight."""


class CancellationToken:
    """A settable, resettable, readable boolean. Defaults to not cancelled."""

    def __init__(self):
        self._cancelled = False

    def set(self) -> None:
        self._cancelled = True

    def reset(self) -> None:
        self._cancelled = False

    def read(self) -> bool:
        return self._cancelled

    def raise_if_set(self) -> None:
        if self._cancelled:
            raise GenerationCancelled()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._cancelled})"


class CancellationRegistry:
    """Tokens of running jobs, keyed by job id."""

    def __init__(self):
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()

    def register(self, job_id: str, token: Optional[CancellationToken] = None) -> CancellationToken:
        with self._lock:
            token = token or CancellationToken()
            self._tokens[job_id] = token
            return token

    def unregister(self, job_id: str) -> None:
        with self._lock:
            self._tokens.pop(job_id, None)

    def get(self, job_id: str) -> Optional[CancellationToken]:
        with self._lock:
            return self._tokens.get(job_id)

    def active_jobs(self) -> list[str]:
        with self._lock:
            return list(self._tokens)

    def cancel(self, job_id: Optional[str] = None) -> list[str]:
        """
        Set the token of one job, or of every active job when no id is given.

        Returns:
            Ids of the jobs that were signalled
        """
        with self._lock:
            targets = [job_id] if job_id else list(self._tokens)
            signalled = []
            for target in targets:
                token = self._tokens.get(target)
                if token is not None:
                    token.set()
                    signalled.append(target)
        logger.info(f"Cancellation requested for {signalled or 'no active jobs'}")
        return signalled

    def reset(self, job_id: Optional[str] = None) -> list[str]:
        with self._lock:
            targets = [job_id] if job_id else list(self._tokens)
            reset = []
            for target in targets:
                token = self._tokens.get(target)
                if token is not None:
                    token.reset()
                    reset.append(target)
        return reset

    def is_cancelled(self, job_id: Optional[str] = None) -> bool:
        with self._lock:
            if job_id:
                token = self._tokens.get(job_id)
                return bool(token and token.read())
            return any(token.read() for token in self._tokens.values())
