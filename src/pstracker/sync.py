#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Synchronization Checker
Compares a stored record's fingerprints against the live filesystem.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Optional

from .classifier import no_op_logger
from .store import Fingerprints, SessionRecord


def last_modified(path: Optional[Path]) -> int:
    """Whole-second mtime of path, or 0 if it does not exist."""
    if path is None:
        return 0
    try:
        return int(path.stat().st_mtime)
    except OSError:
        return 0


def live_fingerprints(
    descriptor: Optional[Path],
    raw_folder: Path,
    processed_folder: Path,
    masks_folder: Path
) -> Fingerprints:
    return Fingerprints(
        project_file=last_modified(descriptor),
        raw_folder=last_modified(raw_folder),
        processed_folder=last_modified(processed_folder),
        masks_folder=last_modified(masks_folder),
    )


def find_mismatch(
    record: SessionRecord,
    descriptor: Optional[Path],
    raw_folder: Path,
    processed_folder: Path,
    masks_folder: Path
) -> Optional[str]:
    """
    Describe the first fingerprint that no longer matches, or None.

    Checked in order: descriptor name, descriptor mtime, then the raw,
    processed and masks folder mtimes.
    """
    live_name = descriptor.name if descriptor is not None else ""
    if record.project_file_name != live_name:
        return "Project file name is no longer synchronized"

    stored = record.fingerprints
    if stored.project_file != last_modified(descriptor):
        return "Project file timestamp is no longer synchronized"
    if stored.raw_folder != last_modified(raw_folder):
        return "Raw folder timestamp is no longer synchronized"
    if stored.processed_folder != last_modified(processed_folder):
        return "Processed folder timestamp is no longer synchronized"
    if stored.masks_folder != last_modified(masks_folder):
        return "Masks folder timestamp is no longer synchronized"
    return None


def check_synchronization(
    record: SessionRecord,
    descriptor: Optional[Path],
    raw_folder: Path,
    processed_folder: Path,
    masks_folder: Path,
    log_callback: Callable[[str], None] = no_op_logger
) -> bool:
    """True when every stored fingerprint matches the filesystem."""
    reason = find_mismatch(record, descriptor, raw_folder, processed_folder, masks_folder)
    if reason:
        log_callback(f"   [yellow]⚠️ {reason}[/yellow]")
        return False
    log_callback("   [dim]Files are synchronized[/dim]")
    return True
