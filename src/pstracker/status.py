#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Status Engine
Pipeline status values, sortable fields, and per-phase scoring.

Everything here is a pure function of the cached chunk metrics. Scores run
from 0 (most complete) to 5 (no data) and drive sorting and progress colors.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Tuple

NOT_AVAILABLE = "N/A"
NO_DATA_SCORE = 5


# ==============================================================================
# STATUS VALUES
# ==============================================================================

class Status(IntEnum):
    UNKNOWN = 0
    UNPROCESSED = 1
    RAW_PROCESSING_DONE = 2
    ALIGNMENT_DONE = 3
    POINT_CLOUD_DONE = 4
    MODEL_GEN_DONE = 5
    TEXTURE_GEN_DONE = 6
    MODEL_EDITS_DONE = 7
    TEXTURE_EDITS_DONE = 8
    FINAL_APPROVAL = 9


# (variant, name, short name, description), in ordinal order
STATUS_TABLE: List[Tuple[Status, str, str, str]] = [
    (Status.UNKNOWN, "PSS_UNKNOWN", "Unknown", "Unknown or inconsistent state"),
    (Status.UNPROCESSED, "PSS_UNPROCESSED", "Unprocessed", "Raw images not yet processed"),
    (Status.RAW_PROCESSING_DONE, "PSS_RAW_PROCESSING_DONE", "Raw Processed", "Raw images processed"),
    (Status.ALIGNMENT_DONE, "PSS_ALIGNMENT_DONE", "Aligned", "Images aligned"),
    (Status.POINT_CLOUD_DONE, "PSS_POINT_CLOUD_DONE", "Dense Cloud", "Dense point cloud built"),
    (Status.MODEL_GEN_DONE, "PSS_MODEL_GEN_DONE", "Model", "Mesh model generated"),
    (Status.TEXTURE_GEN_DONE, "PSS_TEXTURE_GEN_DONE", "Textured", "Texture generated"),
    (Status.MODEL_EDITS_DONE, "PSS_MODEL_EDITS_DONE", "Model Edited", "Model cleanup finished"),
    (Status.TEXTURE_EDITS_DONE, "PSS_TEXTURE_EDITS_DONE", "Texture Edited", "Texture touch-up finished"),
    (Status.FINAL_APPROVAL, "PSS_FINAL_APPROVAL", "Approved", "Final approval given"),
]

_STATUS_LOOKUP = {row[0]: row for row in STATUS_TABLE}


def status_name(status: Status) -> str:
    return _STATUS_LOOKUP[status][1]


def status_short_name(status: Status) -> str:
    return _STATUS_LOOKUP[status][2]


def status_description(status: Status) -> str:
    return _STATUS_LOOKUP[status][3]


def status_from_ordinal(ordinal: int) -> Status:
    """Map a persisted ordinal back to a Status, UNKNOWN when out of range."""
    try:
        return Status(int(ordinal))
    except ValueError:
        return Status.UNKNOWN


def custom_status_names() -> List[str]:
    """Short names of the user-assignable statuses, offset 1 first."""
    return [row[2] for row in STATUS_TABLE if row[0] > Status.TEXTURE_GEN_DONE]


# ==============================================================================
# SORTABLE FIELDS
# ==============================================================================

class Field(IntEnum):
    PROJECT_ID = 0
    PROJECT_NAME = 1
    PHOTO_DATE = 2
    IMAGE_COUNT_REAL = 3
    PROJECT_STATUS = 4
    PROJECT_FOLDER = 5
    IMAGE_ALIGN_LEVEL = 6
    DENSE_CLOUD_LEVEL = 7
    MODEL_GEN_LEVEL = 8
    TEXTURE_GEN_LEVEL = 9
    NOTES = 10


FIELD_TABLE: List[Tuple[Field, str, str, str]] = [
    (Field.PROJECT_ID, "F_PROJECT_ID", "ID", "Unique ID number"),
    (Field.PROJECT_NAME, "F_PROJECT_NAME", "Name", "Session name"),
    (Field.PHOTO_DATE, "F_PHOTO_DATE", "Date", "Date the photos were captured"),
    (Field.IMAGE_COUNT_REAL, "F_IMAGE_COUNT_REAL", "Images", "Number of processed images"),
    (Field.PROJECT_STATUS, "F_PROJECT_STATUS", "Status", "Pipeline status"),
    (Field.PROJECT_FOLDER, "F_PROJECT_FOLDER", "Folder", "Session folder name"),
    (Field.IMAGE_ALIGN_LEVEL, "F_IMAGE_ALIGN_LEVEL", "Align", "Image alignment phase"),
    (Field.DENSE_CLOUD_LEVEL, "F_DENSE_CLOUD_LEVEL", "Dense", "Dense cloud phase"),
    (Field.MODEL_GEN_LEVEL, "F_MODEL_GEN_LEVEL", "Model", "Model generation phase"),
    (Field.TEXTURE_GEN_LEVEL, "F_TEXTURE_GEN_LEVEL", "Texture", "Texture generation phase"),
    (Field.NOTES, "F_NOTES", "Notes", "Special notes"),
]

# Number of columns shown in base and extended views
BASE_LENGTH = 6
EXTENDED_LENGTH = 11

_FIELD_LOOKUP = {row[0]: row for row in FIELD_TABLE}


def field_name(field: Field) -> str:
    return _FIELD_LOOKUP[field][1]


def field_short_name(field: Field) -> str:
    return _FIELD_LOOKUP[field][2]


def field_description(field: Field) -> str:
    return _FIELD_LOOKUP[field][3]


def field_from_string(value: str) -> Field:
    """
    Resolve a field from its name or short name (case-insensitive).

    Unrecognized strings fall back to the first field.
    """
    wanted = value.strip().lower()
    for field, name, short_name, _ in FIELD_TABLE:
        if wanted in (name.lower(), short_name.lower()):
            return field
    return FIELD_TABLE[0][0]


# ==============================================================================
# CACHED CHUNK METRICS
# ==============================================================================

@dataclass
class ChunkData:
    """Flat cache of the active chunk, mirrors the [ChunkData] record section."""

    chunk_count: int = 0
    active_chunk_index: int = 0
    chunk_images: int = -1
    chunk_cameras: int = -1
    alignment_level: str = NOT_AVAILABLE
    alignment_feature_limit: int = 0
    alignment_tie_limit: int = 0
    dense_cloud_level: str = NOT_AVAILABLE
    dense_cloud_images_used: int = 0
    has_mesh: bool = False
    mesh_faces: int = 0
    mesh_verts: int = 0
    texture_count: int = 0
    texture_width: int = 0
    texture_height: int = 0


# ==============================================================================
# PHASE DESCRIPTIONS & SCORES
# ==============================================================================

def describe_align_phase(chunk: ChunkData, has_project: bool) -> str:
    if not has_project:
        return NOT_AVAILABLE
    return (f"{chunk.alignment_level} ({chunk.chunk_images} - "
            f"{int(chunk.alignment_feature_limit / 1000)}k/"
            f"{int(chunk.alignment_tie_limit / 1000)}k)")


def align_phase_score(chunk: ChunkData, has_project: bool) -> int:
    """Score by the share of cameras that ended up aligned."""
    if has_project and chunk.chunk_images > 0 and chunk.chunk_cameras > 0:
        ratio = chunk.chunk_images / float(chunk.chunk_cameras)
        if ratio >= .95:
            return 0
        if ratio >= .6667:
            return 1
        if ratio >= .3333:
            return 2
        if ratio >= .1:
            return 3
        return 4
    return NO_DATA_SCORE


def describe_dense_cloud_phase(chunk: ChunkData, has_project: bool) -> str:
    if not has_project:
        return NOT_AVAILABLE
    return f"{chunk.dense_cloud_level} ({chunk.dense_cloud_images_used})"


def dense_cloud_depth_images(chunk: ChunkData, has_project: bool) -> int:
    if not has_project:
        return 0
    return chunk.dense_cloud_images_used


def dense_cloud_phase_score(chunk: ChunkData, has_project: bool) -> int:
    """
    Score by the share of cameras used for depth maps.

    The comparisons below the top band run the opposite way to
    align_phase_score. Keep them as they are.
    """
    if has_project and chunk.chunk_cameras > 0 and chunk.dense_cloud_images_used > 0:
        ratio = chunk.dense_cloud_images_used / float(chunk.chunk_cameras)
        if ratio >= .950:
            return 0
        if ratio < .6667:
            return 1
        if ratio < .3333:
            return 2
        if ratio < .100:
            return 3
        return 4
    return NO_DATA_SCORE


def describe_model_phase(chunk: ChunkData, has_project: bool) -> str:
    if not has_project or not chunk.has_mesh:
        return NOT_AVAILABLE
    if chunk.mesh_faces >= 1000000:
        return f"{chunk.mesh_faces / 1000000.0:.1f}M faces"
    return f"{chunk.mesh_faces / 1000.0:.1f}K faces"


def model_phase_score(chunk: ChunkData, has_project: bool) -> int:
    if not has_project or not chunk.has_mesh or chunk.mesh_faces == 0:
        return NO_DATA_SCORE
    if chunk.mesh_faces < 5000:
        return 4
    if chunk.mesh_faces < 10000:
        return 3
    if chunk.mesh_faces < 50000:
        return 2
    if chunk.mesh_faces < 1000000:
        return 1
    return 0


def model_face_count(chunk: ChunkData, has_project: bool) -> int:
    if not has_project or not chunk.has_mesh:
        return -1
    return chunk.mesh_faces


def model_vertex_count(chunk: ChunkData, has_project: bool) -> int:
    if not has_project or not chunk.has_mesh:
        return -1
    return chunk.mesh_verts


def describe_texture_phase(chunk: ChunkData, has_project: bool) -> str:
    if not has_project or chunk.texture_count == 0:
        return NOT_AVAILABLE
    return f"{chunk.texture_count} @ ({chunk.texture_width} x {chunk.texture_height})"


def texture_phase_score(chunk: ChunkData, has_project: bool) -> int:
    """Score by the smaller texture dimension."""
    if not has_project or chunk.texture_width == 0 or chunk.texture_height == 0:
        return NO_DATA_SCORE
    smallest = min(chunk.texture_width, chunk.texture_height)
    if smallest < 1024:
        return 4
    if smallest < 2048:
        return 3
    if smallest < 3072:
        return 2
    if smallest < 4096:
        return 1
    return 0


def phase_scores(chunk: ChunkData, has_project: bool) -> Dict[str, int]:
    return {
        'align': align_phase_score(chunk, has_project),
        'dense_cloud': dense_cloud_phase_score(chunk, has_project),
        'model': model_phase_score(chunk, has_project),
        'texture': texture_phase_score(chunk, has_project),
    }


# ==============================================================================
# STATUS DERIVATION
# ==============================================================================

def derive_status(
    current: Status,
    chunk: ChunkData,
    has_project: bool,
    raw_count: int,
    processed_count: int,
    overwrite_custom: bool = False
) -> Status:
    """
    Infer the pipeline status from cached metrics.

    A status past TEXTURE_GEN_DONE was assigned by a user and is returned
    untouched unless overwrite_custom is set.
    """
    if current > Status.TEXTURE_GEN_DONE and not overwrite_custom:
        return current

    if describe_align_phase(chunk, has_project) == NOT_AVAILABLE:
        status = Status.RAW_PROCESSING_DONE
    elif describe_dense_cloud_phase(chunk, has_project) == NOT_AVAILABLE:
        status = Status.ALIGNMENT_DONE
    elif describe_model_phase(chunk, has_project) == NOT_AVAILABLE:
        status = Status.POINT_CLOUD_DONE
    elif describe_texture_phase(chunk, has_project) == NOT_AVAILABLE:
        status = Status.MODEL_GEN_DONE
    else:
        status = Status.TEXTURE_GEN_DONE

    # Raw images but nothing processed
    if processed_count == 0 and raw_count != 0:
        if not has_project:
            status = Status.UNPROCESSED
        else:
            # A project exists yet there are no processed images to feed it
            status = Status.UNKNOWN

    return status


def custom_status(offset: int) -> Optional[Status]:
    """
    Map a user-assigned offset past TEXTURE_GEN_DONE to its Status.

    Returns None when the offset lands outside the custom range.
    """
    ordinal = int(Status.TEXTURE_GEN_DONE) + offset
    if Status.TEXTURE_GEN_DONE < ordinal <= Status.FINAL_APPROVAL:
        return Status(ordinal)
    return None
