"""Shared test fixtures."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from pstracker.descriptors import (
    AlignmentSummary,
    ChunkSummary,
    DenseCloudSummary,
    DescriptorSummarizer,
    MeshSummary,
    ProjectSummary,
    TextureSummary,
)
from pstracker.errors import DescriptorParseError
from pstracker.registry import SessionRegistry


@dataclass
class FakeSummarizer(DescriptorSummarizer):
    """Returns a canned summary, or fails like a malformed file when None."""

    summary: Optional[ProjectSummary] = None
    calls: List[Path] = field(default_factory=list)

    def summarize(self, descriptor_path: Path) -> ProjectSummary:
        self.calls.append(descriptor_path)
        if self.summary is None:
            raise DescriptorParseError(f"malformed: {descriptor_path.name}")
        return self.summary


def make_summary(
    images: int = 40,
    cameras: int = 40,
    dense_used: int = 40,
    mesh_faces: Optional[int] = 250000,
    texture_size: Optional[int] = 4096,
) -> ProjectSummary:
    mesh = MeshSummary(face_count=mesh_faces, vertex_count=mesh_faces // 2) if mesh_faces else None
    texture = TextureSummary(count=1, width=texture_size, height=texture_size) if texture_size else None
    return ProjectSummary(
        chunk_count=1,
        active_chunk_index=0,
        active_chunk=ChunkSummary(
            image_count=images,
            camera_count=cameras,
            alignment=AlignmentSummary("High", 40000, 4000),
            dense_cloud=DenseCloudSummary("Medium", dense_used),
            mesh=mesh,
            texture=texture,
        ),
    )


def touch_files(folder: Path, names: Iterable[str]) -> List[Path]:
    folder.mkdir(parents=True, exist_ok=True)
    paths = []
    for name in names:
        path = folder / name
        path.write_bytes(b"\x00")
        paths.append(path)
    return paths


def set_mtime(path: Path, seconds: int) -> None:
    os.utime(path, (seconds, seconds))


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def statue_dir(tmp_path) -> Path:
    """An unconverted folder holding four camera raw files."""
    root = tmp_path / "12 Statue Of Liberty"
    touch_files(root, ["IMG_0001.CR2", "IMG_0002.cr2", "DSC_0003.nef", "frame4.dng"])
    return root
