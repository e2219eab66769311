#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Fingerprint Store
Reads and writes the per-session metadata record (psh_meta.ini).

The record is a grouped key/value document:

    [General]          identity, status, notes, capture time
    [Images]           cached counts and category folder names
    [ChunkData]        descriptor summary (only while a descriptor is linked)
    [Synchronization]  descriptor name and four timestamp fingerprints
    [Exposure]         raw exposure preferences

Writes are read-modify-write so sections owned by other writers survive.
"""

from __future__ import annotations

import configparser
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .classifier import no_op_logger
from .config import (
    META_FILE_NAME,
    RAW_FOLDER_NAME,
    PROCESSED_FOLDER_NAME,
    MASKS_FOLDER_NAME,
    DATETIME_DAY_NAMES,
    DATETIME_MONTH_NAMES,
)
from .errors import PersistenceCorruption
from .exposure import (
    WB_CHANNELS,
    BrightnessMode,
    ExposureSettings,
    WhiteBalanceMode,
    DEFAULT_EXPOSURE,
)
from .status import ChunkData, Status, status_from_ordinal

GENERAL = "General"
IMAGES = "Images"
CHUNK_DATA = "ChunkData"
SYNCHRONIZATION = "Synchronization"
EXPOSURE = "Exposure"


# ==============================================================================
# RECORD TYPES
# ==============================================================================

@dataclass
class Fingerprints:
    """Second-resolution mtimes, 0 when the path did not exist."""

    project_file: int = 0
    raw_folder: int = 0
    processed_folder: int = 0
    masks_folder: int = 0


@dataclass
class SessionRecord:
    id: int = 0
    name: str = ""
    description: str = ""
    notes: List[str] = field(default_factory=list)
    captured_at: Optional[datetime] = None
    status: Status = Status.UNKNOWN
    explicitly_ignored: bool = False
    initialized: bool = True

    raw_count: int = -1
    processed_count: int = -1
    mask_count: int = -1
    raw_folder: str = RAW_FOLDER_NAME
    processed_folder: str = PROCESSED_FOLDER_NAME
    masks_folder: str = MASKS_FOLDER_NAME

    chunk: Optional[ChunkData] = None
    project_file_name: str = ""
    fingerprints: Fingerprints = field(default_factory=Fingerprints)


# ==============================================================================
# PARSER HELPERS
# ==============================================================================

def _new_parser() -> configparser.ConfigParser:
    parser = configparser.ConfigParser(interpolation=None)
    parser.optionxform = str  # keys are case-sensitive
    return parser


def _bool_str(value: bool) -> str:
    return 'true' if value else 'false'


def _set_or_remove(parser: configparser.ConfigParser, section: str, key: str, value: str) -> None:
    if value:
        parser.set(section, key, value)
    else:
        parser.remove_option(section, key)


def _ensure_section(parser: configparser.ConfigParser, section: str) -> None:
    if not parser.has_section(section):
        parser.add_section(section)


def format_datetime(value: datetime) -> str:
    """'Fri May 3 14:30:00 2024', with English names whatever the locale."""
    return (f"{DATETIME_DAY_NAMES[value.weekday()]} {DATETIME_MONTH_NAMES[value.month - 1]} "
            f"{value.day} {value:%H:%M:%S} {value.year}")


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Inverse of format_datetime(). None when empty or unreadable."""
    if not value:
        return None
    parts = value.split()
    if len(parts) != 5 or parts[1] not in DATETIME_MONTH_NAMES:
        return None
    try:
        clock = datetime.strptime(parts[3], "%H:%M:%S")
        return datetime(int(parts[4]), DATETIME_MONTH_NAMES.index(parts[1]) + 1, int(parts[2]),
                        clock.hour, clock.minute, clock.second)
    except ValueError:
        return None


def _read_notes(parser: configparser.ConfigParser) -> List[str]:
    size = parser.getint(GENERAL, "Notes\\size", fallback=0)
    return [parser.get(GENERAL, f"Notes\\{i}\\note", fallback="") for i in range(1, size + 1)]


def _write_notes(parser: configparser.ConfigParser, notes: List[str]) -> None:
    for key in [k for k in parser.options(GENERAL) if k.startswith("Notes\\")]:
        parser.remove_option(GENERAL, key)
    if not notes:
        return
    for i, note in enumerate(notes, 1):
        parser.set(GENERAL, f"Notes\\{i}\\note", note)
    parser.set(GENERAL, "Notes\\size", str(len(notes)))


# ==============================================================================
# FINGERPRINT STORE
# ==============================================================================

class FingerprintStore:
    """
    Persistence for one session's metadata record.

    All access goes through a per-store lock so a session never has two
    writers at once. While block_writes is set, save() is a no-op; the
    session sets it during multi-step count updates.
    """

    def __init__(self, session_root: Path, file_name: str = META_FILE_NAME):
        self.path = Path(session_root) / file_name
        self.block_writes = False
        self._lock = threading.RLock()

    def exists(self) -> bool:
        return self.path.is_file()

    @contextmanager
    def blocked_writes(self) -> Iterator[None]:
        """Suppress save() for the duration of the block."""
        previous = self.block_writes
        self.block_writes = True
        try:
            yield
        finally:
            self.block_writes = previous

    def _read_parser(self) -> configparser.ConfigParser:
        parser = _new_parser()
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                parser.read_file(f)
        except (configparser.Error, UnicodeDecodeError, OSError) as e:
            raise PersistenceCorruption(f"Unreadable session record {self.path}: {e}") from e
        return parser

    def _read_parser_for_update(self) -> configparser.ConfigParser:
        """Existing contents to merge into, or an empty document if unusable."""
        if not self.exists():
            return _new_parser()
        try:
            return self._read_parser()
        except PersistenceCorruption:
            return _new_parser()

    def _write_parser(self, parser: configparser.ConfigParser) -> None:
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                parser.write(f)
            tmp_path.replace(self.path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise

    # --------------------------------------------------------------------------
    # Record
    # --------------------------------------------------------------------------

    def load(self, log_callback: Callable[[str], None] = no_op_logger) -> Optional[SessionRecord]:
        """
        Load the record.

        A DateTime that cannot be read is reported and loaded as unset.

        Returns:
            The record, or None if no record file exists

        Raises:
            PersistenceCorruption: if the file exists but cannot be parsed
        """
        with self._lock:
            if not self.exists():
                return None
            parser = self._read_parser()

        record = SessionRecord()
        try:
            record.explicitly_ignored = parser.getboolean(GENERAL, "ExplicitlyIgnored", fallback=False)
            if record.explicitly_ignored:
                return record

            # Records without an ID were never converted, only flagged
            record.initialized = parser.getboolean(
                GENERAL, "IsInitialized", fallback=parser.has_option(GENERAL, "ID")
            )
            record.id = parser.getint(GENERAL, "ID", fallback=0)
            record.name = parser.get(GENERAL, "Name", fallback="")
            record.description = parser.get(GENERAL, "Description", fallback="")
            if parser.has_section(GENERAL):
                record.notes = _read_notes(parser)
            stored_date = parser.get(GENERAL, "DateTime", fallback=None)
            record.captured_at = parse_datetime(stored_date)
            if stored_date and record.captured_at is None:
                log_callback(f"   [yellow]⚠️ Ignoring unreadable DateTime '{stored_date}' in {self.path}[/yellow]")
            record.status = status_from_ordinal(parser.getint(GENERAL, "Status", fallback=0))

            record.raw_count = parser.getint(IMAGES, "RawImageCount", fallback=-1)
            record.processed_count = parser.getint(IMAGES, "ProcessedImageCount", fallback=-1)
            record.mask_count = parser.getint(IMAGES, "MaskImageCount", fallback=-1)
            record.raw_folder = parser.get(IMAGES, "RawFolder", fallback=RAW_FOLDER_NAME)
            record.processed_folder = parser.get(IMAGES, "ProcessedFolder", fallback=PROCESSED_FOLDER_NAME)
            record.masks_folder = parser.get(IMAGES, "MasksFolder", fallback=MASKS_FOLDER_NAME)

            if parser.has_section(CHUNK_DATA):
                defaults = ChunkData()
                record.chunk = ChunkData(
                    chunk_count=parser.getint(CHUNK_DATA, "ChunkCount", fallback=defaults.chunk_count),
                    active_chunk_index=parser.getint(CHUNK_DATA, "ActiveChunkIndex", fallback=defaults.active_chunk_index),
                    chunk_images=parser.getint(CHUNK_DATA, "ChunkImages", fallback=defaults.chunk_images),
                    chunk_cameras=parser.getint(CHUNK_DATA, "ChunkCameras", fallback=defaults.chunk_cameras),
                    alignment_level=parser.get(CHUNK_DATA, "AlignmentLevelString", fallback=defaults.alignment_level),
                    alignment_feature_limit=parser.getint(CHUNK_DATA, "AlignmentFeatureLimit", fallback=0),
                    alignment_tie_limit=parser.getint(CHUNK_DATA, "AlignmentTieLimit", fallback=0),
                    dense_cloud_level=parser.get(CHUNK_DATA, "DenseCloudLevelString", fallback=defaults.dense_cloud_level),
                    dense_cloud_images_used=parser.getint(CHUNK_DATA, "DenseCloudImagesUsed", fallback=0),
                    has_mesh=parser.getboolean(CHUNK_DATA, "HasMesh", fallback=False),
                    mesh_faces=parser.getint(CHUNK_DATA, "MeshFaces", fallback=0),
                    mesh_verts=parser.getint(CHUNK_DATA, "MeshVerts", fallback=0),
                    texture_count=parser.getint(CHUNK_DATA, "TextureCount", fallback=0),
                    texture_width=parser.getint(CHUNK_DATA, "TextureWidth", fallback=0),
                    texture_height=parser.getint(CHUNK_DATA, "TextureHeight", fallback=0),
                )

            record.project_file_name = parser.get(SYNCHRONIZATION, "ProjectFileName", fallback="")
            record.fingerprints = Fingerprints(
                project_file=parser.getint(SYNCHRONIZATION, "ProjectFileTimestamp", fallback=0),
                raw_folder=parser.getint(SYNCHRONIZATION, "RawTimestamp", fallback=0),
                processed_folder=parser.getint(SYNCHRONIZATION, "ProcessedTimestamp", fallback=0),
                masks_folder=parser.getint(SYNCHRONIZATION, "MasksTimestamp", fallback=0),
            )
        except ValueError as e:
            raise PersistenceCorruption(f"Invalid value in {self.path}: {e}") from e

        return record

    def save(self, record: SessionRecord) -> bool:
        """
        Write the record. chunk=None drops [ChunkData]; an empty
        project_file_name drops the descriptor fingerprint.

        Returns:
            True if written, False if writes are currently blocked
        """
        if self.block_writes:
            return False

        with self._lock:
            parser = self._read_parser_for_update()

            _ensure_section(parser, GENERAL)
            parser.set(GENERAL, "ID", str(record.id))
            _set_or_remove(parser, GENERAL, "Name", record.name)
            _set_or_remove(parser, GENERAL, "Description", record.description)
            _write_notes(parser, record.notes)
            _set_or_remove(parser, GENERAL, "DateTime",
                           format_datetime(record.captured_at) if record.captured_at else "")
            parser.set(GENERAL, "Status", str(int(record.status)))
            parser.set(GENERAL, "ExplicitlyIgnored", _bool_str(record.explicitly_ignored))
            parser.set(GENERAL, "IsInitialized", _bool_str(record.initialized))

            _ensure_section(parser, IMAGES)
            parser.set(IMAGES, "RawImageCount", str(record.raw_count))
            parser.set(IMAGES, "ProcessedImageCount", str(record.processed_count))
            parser.set(IMAGES, "MaskImageCount", str(record.mask_count))
            parser.set(IMAGES, "RawFolder", record.raw_folder)
            parser.set(IMAGES, "ProcessedFolder", record.processed_folder)
            parser.set(IMAGES, "MasksFolder", record.masks_folder)

            if record.chunk is not None:
                chunk = record.chunk
                _ensure_section(parser, CHUNK_DATA)
                parser.set(CHUNK_DATA, "ChunkCount", str(chunk.chunk_count))
                parser.set(CHUNK_DATA, "ActiveChunkIndex", str(chunk.active_chunk_index))
                parser.set(CHUNK_DATA, "ChunkImages", str(chunk.chunk_images))
                parser.set(CHUNK_DATA, "ChunkCameras", str(chunk.chunk_cameras))
                parser.set(CHUNK_DATA, "AlignmentLevelString", chunk.alignment_level)
                parser.set(CHUNK_DATA, "AlignmentFeatureLimit", str(chunk.alignment_feature_limit))
                parser.set(CHUNK_DATA, "AlignmentTieLimit", str(chunk.alignment_tie_limit))
                parser.set(CHUNK_DATA, "DenseCloudLevelString", chunk.dense_cloud_level)
                parser.set(CHUNK_DATA, "DenseCloudImagesUsed", str(chunk.dense_cloud_images_used))
                parser.set(CHUNK_DATA, "HasMesh", _bool_str(chunk.has_mesh))
                parser.set(CHUNK_DATA, "MeshFaces", str(chunk.mesh_faces))
                parser.set(CHUNK_DATA, "MeshVerts", str(chunk.mesh_verts))
                parser.set(CHUNK_DATA, "TextureCount", str(chunk.texture_count))
                parser.set(CHUNK_DATA, "TextureWidth", str(chunk.texture_width))
                parser.set(CHUNK_DATA, "TextureHeight", str(chunk.texture_height))
            else:
                parser.remove_section(CHUNK_DATA)

            _ensure_section(parser, SYNCHRONIZATION)
            if record.project_file_name:
                parser.set(SYNCHRONIZATION, "ProjectFileName", record.project_file_name)
                parser.set(SYNCHRONIZATION, "ProjectFileTimestamp", str(record.fingerprints.project_file))
            else:
                parser.remove_option(SYNCHRONIZATION, "ProjectFileName")
                parser.remove_option(SYNCHRONIZATION, "ProjectFileTimestamp")
            parser.set(SYNCHRONIZATION, "RawTimestamp", str(record.fingerprints.raw_folder))
            parser.set(SYNCHRONIZATION, "ProcessedTimestamp", str(record.fingerprints.processed_folder))
            parser.set(SYNCHRONIZATION, "MasksTimestamp", str(record.fingerprints.masks_folder))

            self._write_parser(parser)
        return True

    def save_ignored(self, ignored: bool, initialized: bool) -> None:
        """Persist only [General] ExplicitlyIgnored and IsInitialized."""
        with self._lock:
            parser = self._read_parser_for_update()
            _ensure_section(parser, GENERAL)
            parser.set(GENERAL, "ExplicitlyIgnored", _bool_str(ignored))
            parser.set(GENERAL, "IsInitialized", _bool_str(initialized))
            self._write_parser(parser)

    # --------------------------------------------------------------------------
    # Exposure
    # --------------------------------------------------------------------------

    def load_exposure(self) -> ExposureSettings:
        """Exposure settings, defaults for anything missing or unreadable."""
        with self._lock:
            if not self.exists():
                return DEFAULT_EXPOSURE
            try:
                parser = self._read_parser()
            except PersistenceCorruption:
                return DEFAULT_EXPOSURE

        d = DEFAULT_EXPOSURE
        try:
            wb_mode = WhiteBalanceMode(parser.getint(EXPOSURE, "WhiteBalanceMode", fallback=int(d.wb_mode)))
            wb_custom = tuple(
                parser.getfloat(EXPOSURE, f"WhiteBalanceMode\\{channel}", fallback=d.wb_custom[i])
                for i, channel in enumerate(WB_CHANNELS)
            )
            bright_mode = BrightnessMode(parser.getint(EXPOSURE, "BrightnessMode", fallback=int(d.bright_mode)))
            bright_scale = parser.getfloat(EXPOSURE, "BrightnessMode\\Scaler", fallback=d.bright_scale)
        except ValueError:
            return DEFAULT_EXPOSURE

        return ExposureSettings(wb_mode, wb_custom, bright_mode, bright_scale)

    def save_exposure(self, settings: ExposureSettings) -> None:
        with self._lock:
            parser = self._read_parser_for_update()
            _ensure_section(parser, EXPOSURE)
            parser.set(EXPOSURE, "WhiteBalanceMode", str(int(settings.wb_mode)))
            for channel, value in zip(WB_CHANNELS, settings.wb_custom):
                parser.set(EXPOSURE, f"WhiteBalanceMode\\{channel}", repr(float(value)))
            parser.set(EXPOSURE, "BrightnessMode", str(int(settings.bright_mode)))
            parser.set(EXPOSURE, "BrightnessMode\\Scaler", repr(float(settings.bright_scale)))
            self._write_parser(parser)
