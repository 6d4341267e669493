"""Photobook composer: photo ranking, page composition and interactive editing."""

from .composer import PageComposer
from .errors import AnalysisError, EnrichmentError, LayoutError, PhotobookError, StorageError
from .models import BookDocument, Page, PhotoRecord, QualityScore, SelectedPhoto, Tier
from .pipeline import PipelineJob, PipelineResult, run_pipeline

__all__ = [
    "AnalysisError",
    "BookDocument",
    "EnrichmentError",
    "LayoutError",
    "Page",
    "PageComposer",
    "PhotoRecord",
    "PhotobookError",
    "PipelineJob",
    "PipelineResult",
    "QualityScore",
    "SelectedPhoto",
    "StorageError",
    "Tier",
    "run_pipeline",
]
