from __future__ import annotations

from pathlib import Path

from ..errors import DescriptorParseError
from .base import DescriptorSummarizer, ProjectSummary


class UnavailableSummarizer(DescriptorSummarizer):
    """
    Stand-in used when no descriptor parser is installed.

    Every summary fails, so sessions fall back to "no descriptor data".
    """

    def summarize(self, descriptor_path: Path) -> ProjectSummary:
        if not descriptor_path.exists():
            raise DescriptorParseError(f"Descriptor not found: {descriptor_path}")
        raise DescriptorParseError(f"No descriptor parser available for {descriptor_path.name}")
