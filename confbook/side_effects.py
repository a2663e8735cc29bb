"""Fire-and-forget execution of post-commit side effects.

Every task runs inside its own error boundary: failures are logged and
swallowed, so a broken mail server or audit table can never fail or roll
back the command that scheduled the work.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


def _run_guarded(name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
    try:
        func(*args, **kwargs)
    except Exception:
        logger.exception("Side effect %s failed", name)


class SideEffectDispatcher:
    """Runs side effects on a small thread pool; callers never wait on them."""

    def __init__(self, max_workers: int = 4) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="side-effect")

    def dispatch(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        try:
            return self._executor.submit(_run_guarded, name, func, *args, **kwargs)
        except RuntimeError:
            # executor already shut down
            logger.warning("Dropped side effect %s: dispatcher is shut down", name)
            return None

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


class InlineDispatcher:
    """Runs side effects immediately in the caller's thread, same error boundary."""

    def dispatch(self, name: str, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        _run_guarded(name, func, *args, **kwargs)
        return None

    def shutdown(self, wait: bool = True) -> None:
        return None
