"""Campaign batch generation."""

from .batch import BatchOutcome, BatchPipeline
from .distribution import Assignment, SeededRandom, TemplateDistributor
from .tracker import RowJob, RowStatus, RowTracker

__all__ = [
    "Assignment",
    "BatchOutcome",
    "BatchPipeline",
    "RowJob",
    "RowStatus",
    "RowTracker",
    "SeededRandom",
    "TemplateDistributor",
]
