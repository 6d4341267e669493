# analysis/batch.py
"""
Chunked photo analysis.
Scores photos a fixed number at a time so the UI thread never blocks for
longer than one chunk, with a zero-delay deferral between chunks.
"""
import logging
from typing import Callable, List, Optional, Sequence

from .. import config
from ..models import PhotoRecord, QualityScore
from ..sampling import create_batches
from ..scheduling import Scheduler, qt_scheduler
from .quality import QualityAnalyzer

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


def analyze_batch(
    records: Sequence[PhotoRecord],
    analyzer: Optional[QualityAnalyzer] = None,
    chunk_size: int = config.ANALYSIS_CHUNK_SIZE,
    on_progress: Optional[ProgressCallback] = None,
) -> List[QualityScore]:
    """Score ``records`` in order, reporting ``(done, total)`` after each chunk."""
    analyzer = analyzer or QualityAnalyzer()
    total = len(records)
    scores: List[QualityScore] = []
    for chunk in create_batches(records, chunk_size):
        scores.extend(analyzer.analyze(record) for record in chunk)
        if on_progress:
            on_progress(len(scores), total)
    LOGGER.debug("Analysed %d photos", total)
    return scores


class ChunkedAnalysisJob:
    """Cooperative analysis runner driven by a single-shot scheduler.

    ``start()`` defers the first chunk; every chunk defers the next one with
    a zero delay so pending UI events are processed in between. ``cancel()``
    takes effect before the next chunk starts.
    """

    def __init__(
        self,
        records: Sequence[PhotoRecord],
        analyzer: Optional[QualityAnalyzer] = None,
        *,
        chunk_size: int = config.ANALYSIS_CHUNK_SIZE,
        scheduler: Optional[Scheduler] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_finished: Optional[Callable[[List[QualityScore]], None]] = None,
    ) -> None:
        self._chunks = create_batches(records, chunk_size)
        self._total = len(records)
        self._analyzer = analyzer or QualityAnalyzer()
        self._scheduler = scheduler or qt_scheduler
        self._on_progress = on_progress
        self._on_finished = on_finished
        self._next_chunk = 0
        self._running = False
        self._cancelled = False
        self.results: List[QualityScore] = []

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_finished(self) -> bool:
        return not self._running and self._next_chunk >= len(self._chunks) and not self._cancelled

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._cancelled = False
        self._scheduler(0, self._run_chunk)

    def cancel(self) -> None:
        if self._running:
            LOGGER.info("Analysis cancelled after %d of %d photos", len(self.results), self._total)
        self._cancelled = True
        self._running = False

    def _run_chunk(self) -> None:
        if self._cancelled:
            return
        if self._next_chunk < len(self._chunks):
            chunk = self._chunks[self._next_chunk]
            self._next_chunk += 1
            self.results.extend(self._analyzer.analyze(record) for record in chunk)
            if self._on_progress:
                self._on_progress(len(self.results), self._total)

        if self._next_chunk < len(self._chunks):
            self._scheduler(0, self._run_chunk)
            return

        self._running = False
        if self._on_finished:
            self._on_finished(list(self.results))
