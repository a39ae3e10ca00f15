"""Cooperative cancellation for graph runs.

CancellationToken lets Run.stop() halt a run without killing in-flight
provider calls. Cancellation is cooperative - objects check the token at
every suspension point and before launching.

Typical usage:
1. Run creates a CancellationToken per execution attempt
2. Graph objects call run.check_cancelled() around external calls
3. Run.stop() (or a fatal error) calls token.cancel()
4. In-flight units of work raise RunStoppedError at their next check
5. Run.start() awaits token.wait() and returns the Stoppage once it fires
"""

from __future__ import annotations

import asyncio

from canvasflow.core.errors import CanvasflowError


class RunStoppedError(CanvasflowError):
    """Raised at a suspension point after the run was stopped.

    Not an execution fault: the run's task wrapper discards the
    abandoned result and leaves the object in its last status.
    """


class CancellationToken:
    """Token for cooperative cancellation.

    Example:
        >>> token = CancellationToken()
        >>> token.check()  # no-op
        >>> token.cancel()
        >>> token.check()
        Traceback (most recent call last):
        ...
        RunStoppedError
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation.

        Safe to call multiple times.
        """
        self._cancelled = True
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._cancelled

    def check(self) -> None:
        """Raise RunStoppedError if cancelled.

        Raises:
            RunStoppedError: If cancellation was requested.
        """
        if self._cancelled:
            raise RunStoppedError()

    async def wait(self) -> None:
        """Wait until cancelled (the run finished or was stopped)."""
        await self._event.wait()

    def reset(self) -> None:
        """Reset the token for a restarted run."""
        self._cancelled = False
        self._event.clear()
