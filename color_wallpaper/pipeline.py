"""Concurrent scoring of candidates against a target colour.

Two strategies share the same contract: every candidate passed in comes
out exactly once as a :class:`ScoredCandidate`, in no particular order.
A candidate whose pixels cannot be fetched or decoded is scored with
``MAX_DISTANCE`` instead of failing the batch, so the number of results
always equals the number of candidates.

- :func:`score_concurrent` runs one thread task per candidate. It suits
  small, network-bound batches such as a search results page.
- :func:`score_staged` splits the work into decode, average and distance
  stages, each with its own thread count, connected by single-slot queues.
  It bounds the number of open files and decoded buffers when a whole
  directory is scored.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any

import numpy as np

from color_wallpaper.candidates import Candidate, ScoredCandidate
from color_wallpaper.color_utils import MAX_DISTANCE, Color, average_color, color_distance
from color_wallpaper.config import WorkerBudget

logger = logging.getLogger(__name__)

Scorer = Callable[[Sequence[Candidate]], Iterator[ScoredCandidate]]

# End-of-stream marker passed between stages.
_DONE = object()


def _worst(candidate: Candidate, index: int, error: str) -> ScoredCandidate:
    return ScoredCandidate(candidate, index, None, MAX_DISTANCE, error=error)


def score_candidate(candidate: Candidate, index: int, target: Color) -> ScoredCandidate:
    """Fetch, average and compare a single candidate."""
    try:
        avg = average_color(candidate.fetch())
    except Exception as err:
        logger.warning("Skipping %s: %s", candidate.id, err)
        return _worst(candidate, index, str(err))
    distance = color_distance(avg, target)
    logger.debug("%s  avg=%s  distance=%.2f", candidate.id, avg, distance)
    return ScoredCandidate(candidate, index, avg, distance)


def score_concurrent(
    candidates: Sequence[Candidate],
    target: Color,
    max_workers: int | None = None,
) -> Iterator[ScoredCandidate]:
    """Score every candidate in its own task, yielding in completion order."""
    if not candidates:
        return
    workers = max_workers or len(candidates)
    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="score") as pool:
        futures = [
            pool.submit(score_candidate, c, i, target)
            for i, c in enumerate(candidates)
        ]
        for future in as_completed(futures):
            yield future.result()


# -- staged pipeline ---------------------------------------------------

@dataclass
class _Job:
    candidate: Candidate
    index: int
    pixels: np.ndarray | None = None
    avg_color: Color | None = None
    error: str | None = None


class _Stage:
    """A pool of threads applying *work* to every item of *inbox*.

    The stage puts ``_DONE`` on *outbox* once all of its threads have seen
    ``_DONE`` on *inbox*. *work* must not raise.
    """

    def __init__(
        self,
        name: str,
        work: Callable[[_Job], Any],
        inbox: queue.Queue,
        outbox: queue.Queue,
        workers: int,
    ) -> None:
        self.name = name
        self.work = work
        self.inbox = inbox
        self.outbox = outbox
        self._threads = [
            threading.Thread(target=self._loop, name=f"{name}-{i}", daemon=True)
            for i in range(workers)
        ]

    def start(self) -> None:
        for t in self._threads:
            t.start()
        threading.Thread(target=self._close, name=f"{self.name}-close", daemon=True).start()

    def _loop(self) -> None:
        while True:
            item = self.inbox.get()
            if item is _DONE:
                # leave the marker for sibling threads
                self.inbox.put(_DONE)
                return
            self.outbox.put(self.work(item))

    def _close(self) -> None:
        for t in self._threads:
            t.join()
        self.outbox.put(_DONE)


def _decode(job: _Job) -> _Job:
    try:
        job.pixels = job.candidate.fetch()
    except Exception as err:
        logger.warning("Skipping %s: %s", job.candidate.id, err)
        job.error = str(err)
    return job


def _average(job: _Job) -> _Job:
    if job.error is None:
        try:
            job.avg_color = average_color(job.pixels)
        except Exception as err:
            logger.warning("Skipping %s: %s", job.candidate.id, err)
            job.error = str(err)
    job.pixels = None
    return job


def _make_distance(target: Color) -> Callable[[_Job], ScoredCandidate]:
    def _distance(job: _Job) -> ScoredCandidate:
        if job.error is not None or job.avg_color is None:
            return _worst(job.candidate, job.index, job.error or "no average colour")
        distance = color_distance(job.avg_color, target)
        logger.debug("%s  avg=%s  distance=%.2f", job.candidate.id, job.avg_color, distance)
        return ScoredCandidate(job.candidate, job.index, job.avg_color, distance)

    return _distance


def score_staged(
    candidates: Sequence[Candidate],
    target: Color,
    workers: WorkerBudget | None = None,
) -> Iterator[ScoredCandidate]:
    """Score candidates through decode → average → distance thread stages.

    Args:
        candidates: The batch to score.
        target:     Colour to compare against.
        workers:    Thread count per stage (default: derived from CPU count).

    Yields:
        Exactly ``len(candidates)`` scored candidates, in completion order.
    """
    if not candidates:
        return
    workers = workers or WorkerBudget.from_cpu_count()
    logger.debug(
        "Stage workers: decode=%d average=%d distance=%d",
        workers.decode, workers.average, workers.distance,
    )

    jobs: queue.Queue = queue.Queue()
    decoded: queue.Queue = queue.Queue(maxsize=1)
    averaged: queue.Queue = queue.Queue(maxsize=1)
    results: queue.Queue = queue.Queue()

    for i, c in enumerate(candidates):
        jobs.put(_Job(c, i))
    jobs.put(_DONE)

    stages = [
        _Stage("decode", _decode, jobs, decoded, workers.decode),
        _Stage("average", _average, decoded, averaged, workers.average),
        _Stage("distance", _make_distance(target), averaged, results, workers.distance),
    ]
    for stage in stages:
        stage.start()

    for _ in range(len(candidates)):
        yield results.get()
