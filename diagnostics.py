# diagnostics.py
import logging
from typing import Hashable, Set, Tuple


class DiagnosticLimiter:
    """Emits at most one warning per (category, body id) until `reset()`.

    A reconciliation pass creates one limiter and resets it when the pass
    starts, so a body with bad data produces one log line per pass instead of
    one per comparison it takes part in.
    """

    def __init__(self, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger(__name__)
        self._seen: Set[Tuple[str, Hashable]] = set()

    def reset(self) -> None:
        self._seen.clear()

    def warn_once(self, category: str, body_id: Hashable, message: str) -> bool:
        """Logs `message` unless this category/id pair was already reported.

        Returns:
            bool: True if the message was logged.
        """
        key = (category, body_id)
        if key in self._seen:
            return False
        self._seen.add(key)
        self.logger.warning(message)
        return True

    def reported(self, category: str, body_id: Hashable) -> bool:
        return (category, body_id) in self._seen


# Shared by the pure functions in influence/boundary/parent_selection; the
# hierarchy service resets it at the start of every pass.
limiter = DiagnosticLimiter(logging.getLogger("hierarchy.numerics"))
