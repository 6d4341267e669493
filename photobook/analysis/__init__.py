"""Photo quality analysis."""

from .batch import ChunkedAnalysisJob, analyze_batch
from .crop import CropWindow, calculate_smart_crop, crop_for_slot
from .quality import QualityAnalyzer

__all__ = [
    "ChunkedAnalysisJob",
    "CropWindow",
    "QualityAnalyzer",
    "analyze_batch",
    "calculate_smart_crop",
    "crop_for_slot",
]
