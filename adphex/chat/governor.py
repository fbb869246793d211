"""Demo-mode question governor.

Demo sessions may ask a fixed number of questions. The counter is bumped
as soon as a send is attempted, before the request goes out, and is never
handed back if the request later fails.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


class RateGovernor:
    """Bounded question counter.

    Args:
        max_questions: Ceiling, or None for no limit.
        on_limit_reached: Called each time a send is refused.
    """

    def __init__(
        self,
        max_questions: int | None,
        on_limit_reached: Callable[[], None] | None = None,
    ) -> None:
        if max_questions is not None and max_questions < 0:
            raise ValueError("max_questions must be >= 0")
        self.max_questions = max_questions
        self.on_limit_reached = on_limit_reached
        self.count = 0

    @property
    def exhausted(self) -> bool:
        return self.max_questions is not None and self.count >= self.max_questions

    @property
    def remaining(self) -> int | None:
        """Questions left, or None when unlimited."""
        if self.max_questions is None:
            return None
        return max(0, self.max_questions - self.count)

    def try_acquire(self) -> bool:
        """Count a send attempt.

        Returns:
            True if the send may proceed. False if the ceiling was already
            reached, in which case ``on_limit_reached`` has been called.
        """
        if self.exhausted:
            logger.info("Question limit of %s reached", self.max_questions)
            if self.on_limit_reached is not None:
                self.on_limit_reached()
            return False
        self.count += 1
        return True

    def reset(self) -> None:
        self.count = 0
