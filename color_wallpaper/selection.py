"""Selection policies: random pick, exact best of a batch, threshold search."""

from __future__ import annotations

import enum
import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from color_wallpaper.candidates import Candidate, CandidateSource, ScoredCandidate
from color_wallpaper.errors import SourceError
from color_wallpaper.pipeline import Scorer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """Outcome of a scored run.

    Attributes:
        scored:   The chosen candidate.
        fallback: True when the search ran out of pages and settled for
                  the closest candidate seen.
        pages:    Number of batches that were scored.
    """

    scored: ScoredCandidate
    fallback: bool = False
    pages: int = 1


def pick_random(candidates: Sequence[Candidate], rng: random.Random | None = None) -> Candidate:
    """Uniformly random candidate; nothing is fetched."""
    if not candidates:
        msg = "Cannot pick from an empty candidate list"
        raise ValueError(msg)
    return (rng or random.Random()).choice(candidates)


def pick_first(candidates: Sequence[Candidate]) -> Candidate:
    if not candidates:
        msg = "Cannot pick from an empty candidate list"
        raise ValueError(msg)
    return candidates[0]


def batch_best(scored: Iterable[ScoredCandidate]) -> ScoredCandidate | None:
    """Minimum distance of one batch; equal distances go to the lower index.

    Results arrive in completion order, so ties are broken by the
    candidate's position in the batch rather than by arrival.
    """
    return min(scored, key=lambda s: (s.distance, s.index), default=None)


def fold_best(
    best: ScoredCandidate | None,
    candidate: ScoredCandidate | None,
) -> ScoredCandidate | None:
    """Keep *best* unless *candidate* is strictly closer."""
    if candidate is None:
        return best
    if best is None or candidate.distance < best.distance:
        return candidate
    return best


def select_best_of_batch(source: CandidateSource, scorer: Scorer) -> Selection | None:
    """Score the source's single batch and return its closest candidate.

    Returns None when the source yields no candidates.
    """
    batch = source.next_batch()
    if batch is None or not batch.candidates:
        return None
    logger.info("Scoring %d candidates", len(batch))
    best = batch_best(scorer(batch.candidates))
    return Selection(best) if best is not None else None


# -- threshold-bounded search ------------------------------------------

class Phase(enum.Enum):
    SCANNING = "scanning"
    DONE = "done"


@dataclass
class SearchState:
    """Progress of a paginated search.

    ``last_page`` holds the page budget until a batch reports the total
    page count, after which it is the smaller of the two.
    """

    page: int = 1
    last_page: int | None = None
    best_so_far: ScoredCandidate | None = None

    def learn_total_pages(self, total: int) -> None:
        if self.last_page is None or total < self.last_page:
            self.last_page = total

    @property
    def exhausted(self) -> bool:
        return self.last_page is not None and self.page > self.last_page


class ThresholdSearch:
    """Scan batches until one holds a candidate within *threshold*.

    Every batch is folded into ``state.best_so_far``. When the page budget
    runs out first, the closest candidate seen on any page is returned as
    a fallback.
    """

    def __init__(
        self,
        source: CandidateSource,
        scorer: Scorer,
        threshold: float,
        page_budget: int | None = None,
    ) -> None:
        if not threshold > 0:
            msg = f"Threshold must be positive, got {threshold}"
            raise ValueError(msg)
        self.source = source
        self.scorer = scorer
        self.threshold = threshold
        self.state = SearchState(last_page=page_budget)
        self.phase = Phase.SCANNING
        self.pages_scored = 0

    def _finish(self, scored: ScoredCandidate, fallback: bool) -> Selection:
        self.phase = Phase.DONE
        return Selection(scored, fallback=fallback, pages=self.pages_scored)

    def _fallback(self) -> Selection:
        logger.warning("Could not find an appropriate candidate, picking the closest one")
        return self._finish(self.state.best_so_far, fallback=True)

    def run(self) -> Selection:
        """Scan until the threshold is met or the pages run out.

        Raises:
            RuntimeError: the search has already produced its result.
            SourceError:  the source is exhausted before any candidate was scored
                (errors raised by the source itself propagate unchanged).
        """
        if self.phase is Phase.DONE:
            msg = "Search has already finished"
            raise RuntimeError(msg)

        state = self.state
        while True:
            batch = self.source.next_batch()
            if batch is None:
                if state.best_so_far is None:
                    msg = "Source produced no candidates"
                    raise SourceError(msg)
                return self._fallback()

            if batch.total_pages is not None:
                state.learn_total_pages(batch.total_pages)
            if state.page == 1:
                logger.info("Scoring %d candidates per page", len(batch))

            page_best = batch_best(self.scorer(batch.candidates))
            self.pages_scored += 1
            state.best_so_far = fold_best(state.best_so_far, page_best)

            if page_best is not None and page_best.distance <= self.threshold:
                return self._finish(page_best, fallback=False)

            state.page += 1
            if state.exhausted:
                if state.best_so_far is None:
                    msg = "No candidates were scored before the page budget ran out"
                    raise SourceError(msg)
                return self._fallback()

            logger.info(
                "%.2f > %.2f, go to page %d of %s",
                page_best.distance if page_best is not None else float("nan"),
                self.threshold,
                state.page,
                state.last_page if state.last_page is not None else "?",
            )
