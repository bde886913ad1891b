"""
View-Factor Jobs
================

Background, cancellable view-factor computation.

A job runs the Monte Carlo estimator on its own thread and talks to its
owner only through messages (progress, result, error) on a queue; the
owner cancels through an event. Progress is advisory: the worker never
waits for it to be consumed.
"""

import os
import threading
import time
from collections import deque
from dataclasses import dataclass, replace
from queue import Empty, Queue
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..core.errors import ValidationError, WorkerError
from ..core.network import ConductorKind, NetworkSnapshot
from ..utils.logger import get_logger
from .geometry import Surface
from .monte_carlo import MonteCarloViewFactor, RayQuality, ViewFactorEstimate


@dataclass
class ProgressMessage:
    """Periodic progress report."""
    percent: float
    rays_completed: int
    n_rays: int


@dataclass
class ResultMessage:
    """Final estimate."""
    estimate: ViewFactorEstimate
    conductor_id: Optional[str] = None


@dataclass
class ErrorMessage:
    """Crash or cancellation."""
    message: str
    cancelled: bool = False


Message = Union[ProgressMessage, ResultMessage, ErrorMessage]


class ViewFactorJob:
    """
    One view-factor estimate on a background thread.

    Usage::

        job = ViewFactorJob(engine, 'panel', 'radiator', quality=RayQuality.FAST)
        job.start()
        estimate = job.result(on_progress=print)
    """

    def __init__(self,
                 engine: MonteCarloViewFactor,
                 source_id: str,
                 target_id: str,
                 quality: RayQuality = RayQuality.DEFAULT,
                 n_rays: Optional[int] = None,
                 seed: Optional[int] = None,
                 conductor_id: Optional[str] = None):
        """
        Args:
            engine: Estimator holding the scene
            source_id: Emitting node
            target_id: Receiving node
            quality: Ray-count preset, ignored when ``n_rays`` is given
            n_rays: Explicit ray count
            seed: Random seed
            conductor_id: Radiation conductor the result is destined for
        """
        self.engine = engine
        self.source_id = source_id
        self.target_id = target_id
        self.n_rays = n_rays if n_rays is not None else RayQuality(quality).n_rays
        self.seed = seed
        self.conductor_id = conductor_id

        self.messages: Queue = Queue()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_percent = -1
        self._outcome: Optional[Message] = None
        self.logger = get_logger()

    def start(self) -> 'ViewFactorJob':
        """Launch the worker thread."""
        if self._thread is not None:
            raise RuntimeError("job already started")
        self._thread = threading.Thread(
            target=self._run,
            name=f"view-factor-{self.source_id}-{self.target_id}",
            daemon=True,
        )
        self._thread.start()
        return self

    def cancel(self):
        """Ask the worker to stop at its next batch boundary."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _post_progress(self, done: int, total: int):
        percent = int(100 * done / total)
        if percent > self._last_percent:
            self._last_percent = percent
            self.messages.put_nowait(ProgressMessage(100.0 * done / total, done, total))

    def _run(self):
        try:
            estimate = self.engine.estimate(
                self.source_id,
                self.target_id,
                n_rays=self.n_rays,
                seed=self.seed,
                progress=self._post_progress,
                cancel_event=self._cancel,
            )
        except WorkerError as e:
            self.messages.put_nowait(ErrorMessage(str(e), cancelled=e.cancelled))
        except Exception as e:
            # Reported to the owner as a typed failure
            self.logger.exception(f"view factor worker {self.source_id}->{self.target_id} crashed")
            self.messages.put_nowait(ErrorMessage(f"{type(e).__name__}: {e}"))
        else:
            self.messages.put_nowait(ResultMessage(estimate, self.conductor_id))

    def poll(self) -> List[Message]:
        """Drain pending messages without blocking."""
        drained = []
        while True:
            try:
                drained.append(self.messages.get_nowait())
            except Empty:
                return drained

    def result(self,
               timeout: Optional[float] = None,
               on_progress: Optional[Callable[[ProgressMessage], None]] = None) -> ViewFactorEstimate:
        """
        Wait for the final estimate.

        Progress callbacks run on the caller's thread while waiting.

        Raises:
            WorkerError: the job crashed, was cancelled or did not finish in
                time. A job that times out is cancelled.
        """
        if self._thread is None:
            raise RuntimeError("job not started")
        deadline = None if timeout is None else time.monotonic() + timeout

        while self._outcome is None:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            try:
                message = self.messages.get(timeout=remaining)
            except Empty:
                self.cancel()
                raise WorkerError(f"view factor {self.source_id}->{self.target_id} "
                                  f"not finished within {timeout}s") from None
            if isinstance(message, ProgressMessage):
                if on_progress is not None:
                    on_progress(message)
            else:
                self._outcome = message

        if isinstance(self._outcome, ErrorMessage):
            raise WorkerError(self._outcome.message, cancelled=self._outcome.cancelled)
        return self._outcome.estimate


def compute_view_factors(surfaces: Sequence[Surface],
                         pairs: Mapping[str, Tuple[str, str]],
                         quality: RayQuality = RayQuality.DEFAULT,
                         seed: Optional[int] = None,
                         on_progress: Optional[Callable[[str, ProgressMessage], None]] = None,
                         max_concurrent: Optional[int] = None
                         ) -> Dict[str, ViewFactorEstimate]:
    """
    Estimate view factors for several conductors, one background job each.

    At most ``max_concurrent`` jobs run at once; the next job starts as soon
    as the oldest running one finishes.

    Args:
        surfaces: Scene geometry
        pairs: conductor id -> (source node, target node)
        quality: Ray-count preset
        seed: Base seed; job ``k`` uses ``seed + k``
        on_progress: Called with (conductor id, progress) while waiting
        max_concurrent: Worker thread limit (defaults to the CPU count)

    Returns:
        conductor id -> estimate
    """
    limit = max_concurrent if max_concurrent is not None else (os.cpu_count() or 1)
    if limit < 1:
        raise ValidationError(f"max_concurrent must be at least 1, got {limit}")
    engine = MonteCarloViewFactor(surfaces)
    waiting = deque()
    for k, (conductor_id, (source, target)) in enumerate(pairs.items()):
        job_seed = None if seed is None else seed + k
        waiting.append(ViewFactorJob(engine, source, target, quality=quality,
                                     seed=job_seed, conductor_id=conductor_id))
    running = deque()
    results = {}
    try:
        while waiting or running:
            while waiting and len(running) < limit:
                running.append(waiting.popleft().start())
            job = running.popleft()
            callback = None
            if on_progress is not None:
                callback = lambda msg, cid=job.conductor_id: on_progress(cid, msg)
            results[job.conductor_id] = job.result(on_progress=callback)
    except WorkerError:
        for job in running:
            job.cancel()
        raise
    return results


def radiation_pairs(snapshot: NetworkSnapshot, surfaces: Sequence[Surface]) -> Dict[str, Tuple[str, str]]:
    """Radiation conductors whose two nodes both have surfaces."""
    with_geometry = {s.node_id for s in surfaces}
    return {
        c.id: (c.node_from, c.node_to)
        for c in snapshot.conductors
        if c.kind == ConductorKind.RADIATION
        and c.node_from in with_geometry and c.node_to in with_geometry
    }


def apply_view_factors(snapshot: NetworkSnapshot,
                       factors: Mapping[str, Union[float, ViewFactorEstimate]]) -> NetworkSnapshot:
    """
    Copy of ``snapshot`` with radiation conductor view factors replaced.

    Raises:
        ValidationError: unknown conductor, non-radiation conductor or
            factor outside [0, 1]
    """
    problems = []
    updated = snapshot
    for conductor_id, factor in factors.items():
        value = factor.view_factor if isinstance(factor, ViewFactorEstimate) else float(factor)
        try:
            conductor = snapshot.conductor(conductor_id)
        except KeyError:
            problems.append(f"unknown conductor '{conductor_id}'")
            continue
        if conductor.kind != ConductorKind.RADIATION:
            problems.append(f"conductor '{conductor_id}' is not a radiation conductor")
            continue
        if not 0.0 <= value <= 1.0:
            problems.append(f"view factor {value} for '{conductor_id}' outside [0, 1]")
            continue
        updated = updated.replace_conductor(replace(conductor, view_factor=value))
    if problems:
        raise ValidationError(problems)
    return updated
