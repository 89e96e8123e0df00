from __future__ import annotations


class RunGeneration:
    """
    Monotonic run identifier; the cancellation mechanism for async work.

    In-flight fetches are never cancelled. Instead a caller captures the
    current id before awaiting and, once the await returns, commits its result
    only if `is_current(run_id)` still holds. `advance()` (on reset or forced
    refresh) makes every earlier id stale, so late results are dropped.
    """

    def __init__(self) -> None:
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def advance(self) -> int:
        self._current += 1
        return self._current

    def is_current(self, run_id: int) -> bool:
        return run_id == self._current
