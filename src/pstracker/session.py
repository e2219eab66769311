#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Session
One tracked photogrammetry session folder and its cached pipeline state.

A Session examines its folder on construction. Folders without a metadata
record are queued on the registry for approval; the rest load their record
and compare its fingerprints against the filesystem. Image counts are not
scanned until first asked for.
"""

from __future__ import annotations

import functools
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .capture import find_capture_time
from .classifier import classify, list_matching_files, populate_categories, no_op_logger
from .config import (
    PROJECT_FILE_PATTERNS,
    RAW_FILE_PATTERNS,
    PROCESSED_FILE_PATTERNS,
    MASK_FILE_PATTERNS,
)
from .descriptors import DescriptorSummarizer, ProjectSummary, UnavailableSummarizer
from .errors import DescriptorParseError, IoError, MalformedNameConvention, PersistenceCorruption
from .exposure import DEFAULT_EXPOSURE, ExposureSettings
from .registry import SessionRegistry
from .status import (
    ChunkData,
    Field,
    Status,
    custom_status,
    derive_status,
    describe_align_phase,
    describe_dense_cloud_phase,
    describe_model_phase,
    describe_texture_phase,
    dense_cloud_depth_images,
    dense_cloud_phase_score,
    model_face_count,
    model_vertex_count,
    phase_scores,
)
from .store import FingerprintStore, SessionRecord
from .sync import check_synchronization, live_fingerprints


# ==============================================================================
# HELPERS
# ==============================================================================

class CachedCount:
    """
    An image count remembered across runs, backed by a live folder listing.

    The value is UNKNOWN until a folder has been scanned. The listing is
    redone on the first read of each run, when forced, or when the cached
    value and the listing disagree.
    """

    UNKNOWN = -1

    def __init__(self, value: int = UNKNOWN):
        self.value = value
        self.files: Optional[List[Path]] = None

    def is_stale(self) -> bool:
        return self.files is None or len(self.files) != self.value

    def invalidate(self) -> None:
        self.value = self.UNKNOWN
        self.files = None

    def get_or_recompute(
        self,
        lister: Callable[[], List[Path]],
        on_change: Callable[[int], None],
        force: bool = False
    ) -> int:
        if force or self.is_stale():
            self.files = lister()
            if len(self.files) != self.value:
                self.value = len(self.files)
                on_change(self.value)
        return self.value


def parse_folder_name(folder_name: str) -> Tuple[int, str]:
    """
    Split a '<integer id> <free text name>' folder name.

    Raises:
        MalformedNameConvention: if there is no space or the id is not an integer
    """
    head, sep, rest = folder_name.partition(" ")
    if not sep or not rest.strip():
        raise MalformedNameConvention(f"Folder name not in '<id> <name>' format: {folder_name}")
    try:
        session_id = int(head)
    except ValueError as e:
        raise MalformedNameConvention(f"Folder name does not start with an ID: {folder_name}") from e
    if session_id < 0:
        raise MalformedNameConvention(f"Folder ID must not be negative: {folder_name}")
    return session_id, rest.strip()


def chunk_from_summary(summary: ProjectSummary) -> ChunkData:
    """Flatten a descriptor summary into the cached chunk metrics."""
    active = summary.active_chunk
    chunk = ChunkData(
        chunk_count=summary.chunk_count,
        active_chunk_index=summary.active_chunk_index,
        chunk_images=active.image_count,
        chunk_cameras=active.camera_count,
        alignment_level=active.alignment.level_string,
        alignment_feature_limit=active.alignment.feature_limit,
        alignment_tie_limit=active.alignment.tie_point_limit,
        dense_cloud_level=active.dense_cloud.level_string,
        dense_cloud_images_used=active.dense_cloud.images_used,
    )
    if active.mesh is not None:
        chunk.has_mesh = True
        chunk.mesh_faces = active.mesh.face_count
        chunk.mesh_verts = active.mesh.vertex_count
    if active.texture is not None and active.texture.count > 0:
        chunk.texture_count = active.texture.count
        chunk.texture_width = active.texture.width
        chunk.texture_height = active.texture.height
    return chunk


def _cmp(a, b) -> int:
    return (a > b) - (a < b)


# ==============================================================================
# SESSION
# ==============================================================================

class Session:
    """
    Args:
        root: The session folder
        registry: Shared ID counter and approval queue
        summarizer: Descriptor summarizer (defaults to none available)
        log_callback: Receives rich-markup progress and warning lines
        examine: Examine the folder immediately (the normal case)
    """

    def __init__(
        self,
        root: Path,
        registry: SessionRegistry,
        summarizer: Optional[DescriptorSummarizer] = None,
        log_callback: Callable[[str], None] = no_op_logger,
        examine: bool = True
    ):
        self.root = Path(root)
        self.registry = registry
        self.summarizer = summarizer or UnavailableSummarizer()
        self.log_callback = log_callback
        self.store = FingerprintStore(self.root)

        # Assigned from the folder name, the record, or the registry on conversion
        self._id = 0
        self.id_assigned = False
        self.name = ""
        self.description = ""
        self.notes: List[str] = []
        self.captured_at: Optional[datetime] = None
        self.status = Status.UNKNOWN
        self.exposure: ExposureSettings = DEFAULT_EXPOSURE

        folders = classify(self.root)
        self.raw_folder = folders['raw']
        self.processed_folder = folders['processed']
        self.masks_folder = folders['masks']
        self._raw = CachedCount()
        self._processed = CachedCount()
        self._masks = CachedCount()

        self.project_file: Optional[Path] = None
        self.chunk: Optional[ChunkData] = None

        self.initialized = False
        self.synchronized = False
        self.explicitly_ignored = False
        self.record_corrupt = False

        if examine:
            self.examine()

    def __repr__(self) -> str:
        return f"Session(id={self._id}, folder={self.folder_name!r}, status={self.status.name})"

    # --------------------------------------------------------------------------
    # Identity
    # --------------------------------------------------------------------------

    @property
    def id(self) -> int:
        return self._id

    @id.setter
    def id(self, session_id: int) -> None:
        self._id = session_id
        self.id_assigned = True
        self.registry.reserve_id(session_id)

    def set_id(self, session_id: int) -> None:
        self.id = session_id

    @property
    def folder_name(self) -> str:
        return self.root.name

    @property
    def has_project(self) -> bool:
        """True when descriptor summary data is available."""
        return self.chunk is not None

    def add_note(self, note: str) -> None:
        self.notes.append(note)

    # --------------------------------------------------------------------------
    # Examination
    # --------------------------------------------------------------------------

    def _find_project_file(self) -> Optional[Path]:
        try:
            candidates = list_matching_files(self.root, PROJECT_FILE_PATTERNS)
        except IoError as e:
            self.log_callback(f"   [yellow]⚠️ {e}[/yellow]")
            return None
        if not candidates:
            return None
        if len(candidates) > 1:
            self.log_callback(
                f"   [yellow]⚠️ More than one project file in {self.folder_name}. "
                f"Using {candidates[0].name} only.[/yellow]"
            )
        return candidates[0]

    def examine(self) -> None:
        """Locate the descriptor, then load the record or queue for approval."""
        if not self.root.is_dir():
            self.log_callback(f"[red]✗ Session folder not found:[/red] {self.root}")
            return

        self.project_file = self._find_project_file()

        if not self.store.exists():
            self.initialized = False
            self.registry.request_approval(self)
            return

        try:
            record = self.store.load(self.log_callback)
        except PersistenceCorruption as e:
            self.log_callback(f"   [red]✗ {e}[/red]")
            self.log_callback("   [yellow]Using defaults; session needs a full resync.[/yellow]")
            self.record_corrupt = True
            self.initialized = True
            self.synchronized = False
            return

        if record is None:
            self.initialized = False
            self.registry.request_approval(self)
            return

        self._apply_record(record)
        if self.explicitly_ignored:
            return
        if not self.initialized:
            self.registry.request_approval(self)
            return

        self.exposure = self.store.load_exposure()
        self.synchronized = check_synchronization(
            record, self.project_file,
            self.raw_folder, self.processed_folder, self.masks_folder,
            self.log_callback
        )

    def _apply_record(self, record: SessionRecord) -> None:
        self.explicitly_ignored = record.explicitly_ignored
        if self.explicitly_ignored:
            return

        self.initialized = record.initialized
        if record.initialized:
            self.id = record.id
        self.name = record.name
        self.description = record.description
        if record.notes:
            self.notes = list(record.notes)
        self.captured_at = record.captured_at
        self.status = record.status

        self._raw = CachedCount(record.raw_count)
        self._processed = CachedCount(record.processed_count)
        self._masks = CachedCount(record.mask_count)
        self.raw_folder = self.root / record.raw_folder
        self.processed_folder = self.root / record.processed_folder
        self.masks_folder = self.root / record.masks_folder

        self.chunk = record.chunk

    def extract_info_from_folder_name(self, folder_name: Optional[str] = None) -> bool:
        """Take id and name from '<id> <name>'. Leaves both alone otherwise."""
        try:
            session_id, name = parse_folder_name(folder_name or self.folder_name)
        except MalformedNameConvention as e:
            self.log_callback(f"   [yellow]⚠️ {e}[/yellow]")
            return False
        self.id = session_id
        self.name = name
        return True

    def _ensure_id(self) -> None:
        """Take an ID from the folder name, or the next free one from the registry."""
        if self.extract_info_from_folder_name():
            return
        if not self.id_assigned:
            self.id = self.registry.allocate_id()

    def _summarize_descriptor(self) -> None:
        self.chunk = None
        if self.project_file is None:
            return
        result = self.summarizer.try_summarize(self.project_file)
        if isinstance(result, DescriptorParseError):
            self.log_callback(f"   [yellow]⚠️ Could not read {self.project_file.name}:[/yellow] {result}")
            return
        self.chunk = chunk_from_summary(result)

    # --------------------------------------------------------------------------
    # Conversion & synchronization
    # --------------------------------------------------------------------------

    def _recount_all(self, force: bool = True) -> None:
        with self.store.blocked_writes():
            self.raw_image_count(force)
            self.processed_image_count(force)
            self.mask_image_count(force)

    def convert_to_session(
        self,
        raw_folder: Optional[Path] = None,
        processed_folder: Optional[Path] = None,
        masks_folder: Optional[Path] = None
    ) -> None:
        """
        Turn a plain folder of images into a tracked session.

        Sorts loose images into the category folders, takes id/name from
        the folder name, summarizes the descriptor, counts images, reads
        the capture time from EXIF when unset, derives the status and
        writes the first record.
        """
        self.log_callback(f"[grey]Converting {self.folder_name} to a session[/grey]")
        defaults = classify(self.root)
        self.raw_folder = Path(raw_folder) if raw_folder else defaults['raw']
        self.processed_folder = Path(processed_folder) if processed_folder else defaults['processed']
        self.masks_folder = Path(masks_folder) if masks_folder else defaults['masks']

        populate_categories(
            self.root, self.raw_folder, self.processed_folder, self.masks_folder,
            self.log_callback
        )

        self._ensure_id()

        if self.project_file is None:
            self.project_file = self._find_project_file()
        self._summarize_descriptor()

        self._recount_all()
        if self.captured_at is None:
            self.captured_at = find_capture_time(
                self.raw_files() + self.processed_files(), self.log_callback
            )

        self.initialized = True
        self.record_corrupt = False
        self.auto_set_status()
        self.save()

    def update_out_of_sync(self) -> None:
        """Full re-derivation after the filesystem drifted from the record."""
        self.log_callback(f"[grey]Resynchronizing {self.folder_name}[/grey]")
        if not self.id_assigned:
            self._ensure_id()
        self.project_file = self._find_project_file()
        self._summarize_descriptor()

        self._raw.invalidate()
        self._processed.invalidate()
        self._masks.invalidate()
        self._recount_all()

        self.record_corrupt = False
        self.auto_set_status()
        self.save()

    def check_synchronization(self) -> bool:
        """Re-check the stored fingerprints against the filesystem."""
        try:
            record = self.store.load(self.log_callback)
        except PersistenceCorruption as e:
            self.log_callback(f"   [red]✗ {e}[/red]")
            record = None
        if record is None:
            self.synchronized = False
        else:
            self.synchronized = check_synchronization(
                record, self.project_file,
                self.raw_folder, self.processed_folder, self.masks_folder,
                self.log_callback
            )
        return self.synchronized

    # --------------------------------------------------------------------------
    # Persistence
    # --------------------------------------------------------------------------

    def _relative(self, folder: Path) -> str:
        return os.path.relpath(folder, self.root)

    def to_record(self) -> SessionRecord:
        """Snapshot of the current state with live fingerprints."""
        return SessionRecord(
            id=self._id,
            name=self.name,
            description=self.description,
            notes=list(self.notes),
            captured_at=self.captured_at,
            status=self.status,
            explicitly_ignored=self.explicitly_ignored,
            initialized=self.initialized,
            raw_count=self._raw.value,
            processed_count=self._processed.value,
            mask_count=self._masks.value,
            raw_folder=self._relative(self.raw_folder),
            processed_folder=self._relative(self.processed_folder),
            masks_folder=self._relative(self.masks_folder),
            chunk=self.chunk,
            project_file_name=self.project_file.name if self.project_file else "",
            fingerprints=live_fingerprints(
                self.project_file, self.raw_folder, self.processed_folder, self.masks_folder
            ),
        )

    def save(self) -> bool:
        """Persist the record unless writes are blocked. Never raises on I/O."""
        try:
            written = self.store.save(self.to_record())
        except OSError as e:
            self.log_callback(f"   [red]✗ Could not write {self.store.path.name}:[/red] {e}")
            return False
        if written:
            self.synchronized = True
        return written

    def set_explicitly_ignored(self, ignored: bool) -> None:
        self.explicitly_ignored = ignored
        try:
            self.store.save_ignored(ignored, self.initialized)
        except OSError as e:
            self.log_callback(f"   [red]✗ Could not write {self.store.path.name}:[/red] {e}")

    def set_exposure(self, settings: ExposureSettings) -> None:
        self.exposure = settings
        try:
            self.store.save_exposure(settings)
        except OSError as e:
            self.log_callback(f"   [red]✗ Could not write {self.store.path.name}:[/red] {e}")

    # --------------------------------------------------------------------------
    # Image counts
    # --------------------------------------------------------------------------

    def _list_or_empty(self, folder: Path, patterns: Iterable[str], exclude=None) -> List[Path]:
        try:
            return list_matching_files(folder, patterns, exclude)
        except IoError as e:
            self.log_callback(f"   [yellow]⚠️ {e}[/yellow]")
            return []

    def _count_changed(self, value: int) -> None:
        self.save()

    def raw_files(self, force: bool = False) -> List[Path]:
        self.raw_image_count(force)
        return list(self._raw.files or [])

    def processed_files(self, force: bool = False) -> List[Path]:
        self.processed_image_count(force)
        return list(self._processed.files or [])

    def mask_files(self, force: bool = False) -> List[Path]:
        self.mask_image_count(force)
        return list(self._masks.files or [])

    def raw_image_count(self, force: bool = False) -> int:
        return self._raw.get_or_recompute(
            lambda: self._list_or_empty(self.raw_folder, RAW_FILE_PATTERNS),
            self._count_changed, force
        )

    def processed_image_count(self, force: bool = False) -> int:
        return self._processed.get_or_recompute(
            lambda: self._list_or_empty(self.processed_folder, PROCESSED_FILE_PATTERNS, MASK_FILE_PATTERNS),
            self._count_changed, force
        )

    def mask_image_count(self, force: bool = False) -> int:
        return self._masks.get_or_recompute(
            lambda: self._list_or_empty(self.masks_folder, MASK_FILE_PATTERNS),
            self._count_changed, force
        )

    @property
    def cached_raw_count(self) -> int:
        return self._raw.value

    @property
    def cached_processed_count(self) -> int:
        return self._processed.value

    @property
    def cached_mask_count(self) -> int:
        return self._masks.value

    # --------------------------------------------------------------------------
    # Status
    # --------------------------------------------------------------------------

    @property
    def _chunk_or_default(self) -> ChunkData:
        return self.chunk if self.chunk is not None else ChunkData()

    def auto_set_status(self, overwrite_custom: bool = False) -> Status:
        self.status = derive_status(
            self.status, self._chunk_or_default, self.has_project,
            self._raw.value, self._processed.value, overwrite_custom
        )
        return self.status

    def set_custom_status(self, offset: int) -> Status:
        """Assign TEXTURE_GEN_DONE + offset, or fall back to auto derivation."""
        status = custom_status(offset)
        if status is None:
            return self.auto_set_status()
        self.status = status
        return self.status

    def describe_align_phase(self) -> str:
        return describe_align_phase(self._chunk_or_default, self.has_project)

    def describe_dense_cloud_phase(self) -> str:
        return describe_dense_cloud_phase(self._chunk_or_default, self.has_project)

    def describe_model_phase(self) -> str:
        return describe_model_phase(self._chunk_or_default, self.has_project)

    def describe_texture_phase(self) -> str:
        return describe_texture_phase(self._chunk_or_default, self.has_project)

    def dense_cloud_depth_images(self) -> int:
        return dense_cloud_depth_images(self._chunk_or_default, self.has_project)

    def model_face_count(self) -> int:
        return model_face_count(self._chunk_or_default, self.has_project)

    def model_vertex_count(self) -> int:
        return model_vertex_count(self._chunk_or_default, self.has_project)

    def phase_scores(self) -> Dict[str, int]:
        return phase_scores(self._chunk_or_default, self.has_project)

    # --------------------------------------------------------------------------
    # Ordering
    # --------------------------------------------------------------------------

    def compare_to(self, other: "Session", field: Optional[Field] = None) -> int:
        """Signed comparison on field (registry sort field when omitted)."""
        if field is None:
            field = self.registry.sort_by

        if field == Field.PROJECT_ID:
            return _cmp(self._id, other._id)
        if field == Field.PROJECT_NAME:
            return _cmp(self.name, other.name)
        if field == Field.PHOTO_DATE:
            # Undated sessions sort after dated ones
            if self.captured_at is None:
                return 1
            if other.captured_at is None:
                return -1
            return _cmp(self.captured_at, other.captured_at)
        if field == Field.IMAGE_COUNT_REAL:
            return _cmp(self._processed.value, other._processed.value)
        if field == Field.PROJECT_STATUS:
            return _cmp(int(self.status), int(other.status))
        if field == Field.IMAGE_ALIGN_LEVEL:
            return _cmp(self.describe_align_phase(), other.describe_align_phase())
        if field == Field.DENSE_CLOUD_LEVEL:
            return _cmp(
                dense_cloud_phase_score(self._chunk_or_default, self.has_project),
                dense_cloud_phase_score(other._chunk_or_default, other.has_project),
            )
        if field == Field.MODEL_GEN_LEVEL:
            return _cmp(self.model_face_count(), other.model_face_count())
        if field == Field.TEXTURE_GEN_LEVEL:
            return _cmp(self.describe_texture_phase(), other.describe_texture_phase())
        return _cmp(self.folder_name, other.folder_name)


# ==============================================================================
# COLLECTION HELPERS
# ==============================================================================

def sort_sessions(
    sessions: Iterable[Session],
    field: Field,
    reverse: bool = False
) -> List[Session]:
    return sorted(
        sessions,
        key=functools.cmp_to_key(lambda a, b: a.compare_to(b, field)),
        reverse=reverse
    )


def collection_stats(sessions: Iterable[Session]) -> Dict[str, int]:
    """Counts behind the collection summary line."""
    sessions = list(sessions)
    return {
        'total': len(sessions),
        'unique_dirs': len({s.root.resolve() for s in sessions}),
        'without_project': sum(1 for s in sessions if s.project_file is None),
        'without_image_align': sum(1 for s in sessions if s.describe_align_phase() == "N/A"),
        'without_dense_cloud': sum(1 for s in sessions if s.dense_cloud_depth_images() <= 0),
        'without_model': sum(1 for s in sessions if s.model_face_count() <= 0),
    }
