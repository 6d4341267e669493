"""End-to-end composition: upload to paginated book.

Deduplicate, score, select, optionally enrich, then compose pages. Progress
is reported as ``(stage, percent, message)`` with analysis covering 0-30%,
selection 30-40%, enrichment 40-80% and layout 80-100%.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from . import config
from .analysis.batch import ChunkedAnalysisJob, analyze_batch
from .analysis.quality import QualityAnalyzer
from .composer import PageComposer
from .dedup import DeduplicationResult, deduplicate
from .enrichment import EnrichmentProvider, NarrativeAnalysis, classify_photos, request_enrichment
from .models import BookDocument, Page, PhotoRecord, QualityScore, SelectedPhoto
from .scheduling import Scheduler
from .selection import photos_per_page_distribution, select_photos

LOGGER = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, str], None]

ANALYZING = "analyzing"
SELECTING = "selecting"
ENRICHING = "enriching"
COMPOSING = "composing"
COMPLETE = "complete"


@dataclass
class PipelineResult:
    selected: List[SelectedPhoto] = field(default_factory=list)
    excluded: List[PhotoRecord] = field(default_factory=list)
    pages: List[Page] = field(default_factory=list)
    analysis: Optional[NarrativeAnalysis] = None
    photo_roles: Dict[str, str] = field(default_factory=dict)
    stats: Dict[str, Any] = field(default_factory=dict)

    def to_document(self, book_id: str) -> BookDocument:
        title = self.analysis.title if self.analysis is not None else config.DEFAULT_TITLE
        return BookDocument(
            id=book_id,
            title=title,
            photos=[photo.src for photo in self.selected],
            pages=self.pages,
            analysis=self.analysis.to_dict() if self.analysis is not None else None,
        )


def _reporter(on_progress: Optional[ProgressCallback]) -> ProgressCallback:
    def report(stage: str, percent: int, message: str) -> None:
        if on_progress:
            on_progress(stage, percent, message)

    return report


def _analysis_progress(report: ProgressCallback) -> Callable[[int, int], None]:
    def progress(done: int, count: int) -> None:
        report(ANALYZING, int(done / count * 30) if count else 30, f"Analysed {done} of {count} photos")

    return progress


def run_pipeline(
    records: Sequence[PhotoRecord],
    *,
    analyzer: Optional[QualityAnalyzer] = None,
    enrichment: Optional[EnrichmentProvider] = None,
    include_all: bool = False,
    rng: Optional[random.Random] = None,
    on_progress: Optional[ProgressCallback] = None,
    composer: Optional[PageComposer] = None,
) -> PipelineResult:
    """Run every stage synchronously. See :class:`PipelineJob` for UI use."""
    report = _reporter(on_progress)
    dedup = deduplicate(records)

    report(ANALYZING, 0, f"Analysing {len(dedup.unique)} photos")
    scores = analyze_batch(dedup.unique, analyzer, on_progress=_analysis_progress(report))
    return compose_from_scores(
        dedup,
        scores,
        uploaded=len(records),
        enrichment=enrichment,
        include_all=include_all,
        rng=rng,
        on_progress=on_progress,
        composer=composer,
    )


def compose_from_scores(
    dedup: DeduplicationResult,
    scores: Sequence[QualityScore],
    *,
    uploaded: int,
    enrichment: Optional[EnrichmentProvider] = None,
    include_all: bool = False,
    rng: Optional[random.Random] = None,
    on_progress: Optional[ProgressCallback] = None,
    composer: Optional[PageComposer] = None,
) -> PipelineResult:
    """Selection, enrichment and composition for already scored photos.

    ``scores`` are parallel to ``dedup.unique``.
    """
    if len(scores) != len(dedup.unique):
        raise ValueError(f"Expected {len(dedup.unique)} scores, got {len(scores)}")
    report = _reporter(on_progress)
    unique = dedup.unique
    total = len(unique)

    report(SELECTING, 30, "Selecting photos")
    selection = select_photos(list(zip(unique, scores)), include_all=include_all)
    report(SELECTING, 40, f"Selected {len(selection.selected)} photos")

    analysis = None
    if enrichment is not None:
        report(ENRICHING, 45, "Requesting narrative analysis")
        analysis = request_enrichment(enrichment, unique)
    report(ENRICHING, 80, "Narrative ready" if analysis else "Continuing without narrative")

    roles = classify_photos(total, analysis)
    photo_roles = {record.identity_key: role for record, role in zip(unique, roles)}

    report(COMPOSING, 85, "Composing pages")
    composer = composer or PageComposer(rng=rng)
    pages = composer.compose(selection.selected, analysis)
    distribution = photos_per_page_distribution(len(selection.selected), len(pages))
    report(COMPLETE, 100, f"Created {len(pages)} pages")

    stats = {
        "uploaded": uploaded,
        "unique": total,
        "duplicates": dedup.duplicates,
        "selected": len(selection.selected),
        "excluded": len(selection.excluded),
        "by_tier": selection.stats["by_tier"],
        "pages": len(pages),
        "photos_per_page": {
            "min": distribution.min,
            "max": distribution.max,
            "avg": distribution.avg,
        },
    }
    LOGGER.info(
        "Pipeline finished: %d uploaded, %d unique, %d selected, %d pages",
        stats["uploaded"],
        stats["unique"],
        stats["selected"],
        stats["pages"],
    )
    return PipelineResult(
        selected=selection.selected,
        excluded=selection.excluded,
        pages=pages,
        analysis=analysis,
        photo_roles=photo_roles,
        stats=stats,
    )


class PipelineJob:
    """The pipeline driven from the Qt event loop.

    Analysis runs one chunk per zero-delay single shot through
    :class:`ChunkedAnalysisJob`; selection, enrichment and composition run in
    the callback that receives the last chunk's scores. ``on_finished``
    receives the :class:`PipelineResult`. A cancelled job never composes.
    """

    def __init__(
        self,
        records: Sequence[PhotoRecord],
        *,
        analyzer: Optional[QualityAnalyzer] = None,
        enrichment: Optional[EnrichmentProvider] = None,
        include_all: bool = False,
        rng: Optional[random.Random] = None,
        composer: Optional[PageComposer] = None,
        scheduler: Optional[Scheduler] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_finished: Optional[Callable[[PipelineResult], None]] = None,
    ) -> None:
        self._uploaded = len(records)
        self._dedup = deduplicate(records)
        self._enrichment = enrichment
        self._include_all = include_all
        self._rng = rng
        self._composer = composer
        self._on_progress = on_progress
        self._on_finished = on_finished
        self._report = _reporter(on_progress)
        self.result: Optional[PipelineResult] = None
        self._analysis = ChunkedAnalysisJob(
            self._dedup.unique,
            analyzer,
            scheduler=scheduler,
            on_progress=_analysis_progress(self._report),
            on_finished=self._compose,
        )

    @property
    def is_running(self) -> bool:
        return self._analysis.is_running

    @property
    def is_cancelled(self) -> bool:
        return self._analysis.is_cancelled

    @property
    def is_finished(self) -> bool:
        return self.result is not None

    def start(self) -> None:
        if self.is_running or self.is_finished:
            return
        self._report(ANALYZING, 0, f"Analysing {len(self._dedup.unique)} photos")
        self._analysis.start()

    def cancel(self) -> None:
        self._analysis.cancel()

    def _compose(self, scores: List[QualityScore]) -> None:
        self.result = compose_from_scores(
            self._dedup,
            scores,
            uploaded=self._uploaded,
            enrichment=self._enrichment,
            include_all=self._include_all,
            rng=self._rng,
            on_progress=self._on_progress,
            composer=self._composer,
        )
        if self._on_finished:
            self._on_finished(self.result)
