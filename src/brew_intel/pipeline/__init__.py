"""Queue-driven content pipeline for Brew Intel."""

from brew_intel.pipeline.collection import CollectionStage
from brew_intel.pipeline.deduplication import DeduplicationStage
from brew_intel.pipeline.extraction import ExtractionStage
from brew_intel.pipeline.runner import Pipeline

__all__ = [
    "Pipeline",
    "CollectionStage",
    "ExtractionStage",
    "DeduplicationStage",
]
