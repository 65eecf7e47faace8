"""
Best-Effort Policies

Trigger handlers do background work whose failure must never affect the
write that caused it. How such failures are treated is a named policy
object injected into the handlers, so it can be replaced (e.g. by a retry
queue) without touching the orchestrator.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Optional, TypeVar

from ..core.errors import MatchingError

T = TypeVar("T")

logger = logging.getLogger("matcher.triggers")


class BestEffortPolicy:
    """
    Decides what happens when a unit of trigger work fails.

    `run` awaits the work and returns its result, or None if it failed
    and the policy absorbed the failure.
    """

    name = "abstract"

    async def run(self, work: Awaitable[T], context: str) -> Optional[T]:
        raise NotImplementedError


class LogAndContinuePolicy(BestEffortPolicy):
    """
    Log the failure and carry on.

    Known matching errors are logged at WARNING without a traceback; anything
    else is logged with its traceback. Cancellation is never absorbed.
    """

    name = "log-and-continue"

    async def run(self, work: Awaitable[T], context: str) -> Optional[T]:
        try:
            return await work
        except MatchingError as exc:
            logger.warning("%s failed (%s): %s", context, exc.error_type, exc)
        except Exception:
            logger.exception("%s failed unexpectedly", context)
        return None
