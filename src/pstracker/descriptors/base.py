from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..errors import DescriptorParseError


@dataclass(frozen=True)
class AlignmentSummary:
    level_string: str
    feature_limit: int
    tie_point_limit: int


@dataclass(frozen=True)
class DenseCloudSummary:
    level_string: str
    images_used: int


@dataclass(frozen=True)
class MeshSummary:
    face_count: int
    vertex_count: int


@dataclass(frozen=True)
class TextureSummary:
    count: int
    width: int
    height: int


@dataclass(frozen=True)
class ChunkSummary:
    image_count: int
    camera_count: int
    alignment: AlignmentSummary
    dense_cloud: DenseCloudSummary
    mesh: Optional[MeshSummary] = None
    texture: Optional[TextureSummary] = None


@dataclass(frozen=True)
class ProjectSummary:
    """The fixed summary of a project descriptor the tracker relies on."""

    chunk_count: int
    active_chunk_index: int
    active_chunk: ChunkSummary


SummaryResult = Union[ProjectSummary, DescriptorParseError]


class DescriptorSummarizer(ABC):
    """
    Abstract base class for project descriptor summarizers.
    """

    @abstractmethod
    def summarize(self, descriptor_path: Path) -> ProjectSummary:
        """
        Read a descriptor file and reduce it to a ProjectSummary.

        Args:
            descriptor_path: The project file (*.psz / *.psx)

        Raises:
            DescriptorParseError: if the file is missing or malformed
        """
        pass

    def try_summarize(self, descriptor_path: Path) -> SummaryResult:
        """
        Like summarize(), but hands parse failures back as a value.
        """
        try:
            return self.summarize(descriptor_path)
        except DescriptorParseError as e:
            return e
