from __future__ import annotations
from typing import Callable, Dict
from .base import (
    AlignmentSummary,
    ChunkSummary,
    DenseCloudSummary,
    DescriptorSummarizer,
    MeshSummary,
    ProjectSummary,
    SummaryResult,
    TextureSummary,
)
from .unavailable import UnavailableSummarizer

_REGISTRY: Dict[str, Callable[[], DescriptorSummarizer]] = {
    "none": UnavailableSummarizer,
}


def register_summarizer(name: str, factory: Callable[[], DescriptorSummarizer]) -> None:
    """
    Make an external descriptor parser available under a name.
    """
    _REGISTRY[name.lower()] = factory


def get_summarizer(name: str = "none") -> DescriptorSummarizer:
    """
    Factory function to get a descriptor summarizer by name.
    Unknown names fall back to the unavailable summarizer.
    """
    factory = _REGISTRY.get(name.lower(), UnavailableSummarizer)
    return factory()
