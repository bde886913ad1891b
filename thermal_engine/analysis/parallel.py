"""
Bounded Worker Pool
===================

Runs independent evaluations on a process pool with at most
``max_workers`` in flight. Each task yields an ``Outcome``; one task
failing never affects the others.
"""

import os
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from ..core.errors import ThermalEngineError
from ..utils.logger import get_logger


@dataclass
class Outcome:
    """Result or error of one task, in submission order."""
    index: int
    value: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def default_workers() -> int:
    return os.cpu_count() or 1


def _call(fn: Callable, arg) -> Outcome:
    try:
        return Outcome(index=-1, value=fn(arg))
    except ThermalEngineError as e:
        return Outcome(index=-1, error=f"{type(e).__name__}: {e}")


def run_bounded(fn: Callable,
                args: Sequence,
                max_workers: Optional[int] = None,
                on_done: Optional[Callable[[Outcome, int, int], None]] = None) -> List[Outcome]:
    """
    Evaluate ``fn(arg)`` for every argument.

    ``fn`` must be a module-level function so it can be pickled. Engine
    errors raised by a task are captured in its ``Outcome``; anything else
    propagates. With ``max_workers == 1`` tasks run inline.

    Args:
        fn: Task function
        args: One argument per task
        max_workers: Concurrency bound, defaults to the CPU count
        on_done: Called with (outcome, completed, total) as tasks finish

    Returns:
        Outcomes ordered like ``args``
    """
    workers = max_workers or default_workers()
    if workers < 1:
        raise ValueError("max_workers must be at least 1")
    total = len(args)
    outcomes: List[Optional[Outcome]] = [None] * total
    logger = get_logger()

    def record(index: int, outcome: Outcome):
        outcome.index = index
        outcomes[index] = outcome
        if outcome.error is not None:
            logger.warning(f"task {index} failed: {outcome.error}")
        done = sum(o is not None for o in outcomes)
        logger.log_progress(done, total, getattr(fn, '__name__', ''))
        if on_done is not None:
            on_done(outcome, done, total)

    if workers == 1 or total <= 1:
        for i, arg in enumerate(args):
            record(i, _call(fn, arg))
        return outcomes

    logger.debug(f"dispatching {total} tasks to {workers} workers")
    with ProcessPoolExecutor(max_workers=workers) as pool:
        pending = {}
        next_index = 0
        while next_index < total or pending:
            while next_index < total and len(pending) < workers:
                pending[pool.submit(_call, fn, args[next_index])] = next_index
                next_index += 1
            finished, _ = wait(pending, return_when=FIRST_COMPLETED)
            for future in finished:
                record(pending.pop(future), future.result())
    return outcomes
