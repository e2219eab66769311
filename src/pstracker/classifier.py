#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Directory Classifier
Sorts loose session files into Raw / Processed / Masks sub-folders.
"""

from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .config import (
    RAW_FOLDER_NAME,
    PROCESSED_FOLDER_NAME,
    MASKS_FOLDER_NAME,
    RAW_FILE_PATTERNS,
    PROCESSED_FILE_PATTERNS,
    MASK_FILE_PATTERNS,
)
from .errors import IoError


def no_op_logger(message: str) -> None:
    """A dummy logger that does nothing, for when no callback is provided."""
    pass


def matches_patterns(filename: str, patterns: Iterable[str]) -> bool:
    """Case-insensitive glob match of a bare file name against any pattern."""
    lowered = filename.lower()
    return any(fnmatch.fnmatchcase(lowered, pattern.lower()) for pattern in patterns)


def list_matching_files(
    folder: Path,
    patterns: Iterable[str],
    exclude: Optional[Iterable[str]] = None
) -> List[Path]:
    """
    List regular files directly inside folder that match patterns.

    Symlinks are skipped. A missing folder yields an empty list.
    """
    if not folder.is_dir():
        return []
    patterns = list(patterns)
    exclude = list(exclude) if exclude else []
    found = []
    try:
        for entry in folder.iterdir():
            if entry.is_symlink() or not entry.is_file():
                continue
            if not matches_patterns(entry.name, patterns):
                continue
            if exclude and matches_patterns(entry.name, exclude):
                continue
            found.append(entry)
    except OSError as e:
        raise IoError(f"Could not list {folder}: {e}") from e
    return sorted(found, key=lambda p: p.name)


def classify(
    root: Path,
    raw_name: str = RAW_FOLDER_NAME,
    processed_name: str = PROCESSED_FOLDER_NAME,
    masks_name: str = MASKS_FOLDER_NAME
) -> Dict[str, Path]:
    """Category sub-folder paths for a session root."""
    return {
        'raw': root / raw_name,
        'processed': root / processed_name,
        'masks': root / masks_name,
    }


def ensure_and_populate(
    root: Path,
    target: Path,
    patterns: Iterable[str],
    log_callback: Callable[[str], None] = no_op_logger
) -> int:
    """
    Create target if needed, then move matching files from root into it.

    Files are renamed, not copied. An existing file of the same name in
    target is overwritten. Running again once everything is sorted is a no-op.

    Returns:
        Number of files moved

    Raises:
        IoError: if target cannot be created
    """
    if not target.is_dir():
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IoError(f"Failed to create directory {target}: {e}") from e
        if not target.is_dir():
            raise IoError(f"Failed to create directory {target}")

    moved = 0
    for src in list_matching_files(root, patterns):
        try:
            src.replace(target / src.name)
            moved += 1
        except OSError as e:
            log_callback(f"   [yellow]⚠️ Could not move {src.name} → {target.name}/:[/yellow] {e}")
    if moved:
        log_callback(f"   [green]✓[/green] Moved {moved} files to {target.name}/")
    return moved


def populate_categories(
    root: Path,
    raw: Path,
    processed: Path,
    masks: Path,
    log_callback: Callable[[str], None] = no_op_logger
) -> Dict[str, int]:
    """
    Sort every loose file in root into its category folder.

    Masks go first so the processed filters never claim '*_mask.*' files.
    A category that cannot be created is reported and skipped.
    """
    moved = {}
    for key, target, patterns in (
        ('masks', masks, MASK_FILE_PATTERNS),
        ('raw', raw, RAW_FILE_PATTERNS),
        ('processed', processed, PROCESSED_FILE_PATTERNS),
    ):
        try:
            moved[key] = ensure_and_populate(root, target, patterns, log_callback)
        except IoError as e:
            log_callback(f"   [yellow]⚠️ {e}[/yellow]")
            moved[key] = 0
    return moved
