#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Capture Time
Reads the shooting date of a session from its images' EXIF data.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

import exifread

from .classifier import no_op_logger

EXIF_DATE_TAG = 'EXIF DateTimeOriginal'
EXIF_DATE_FORMAT = '%Y:%m:%d %H:%M:%S'

# Images tried before giving up on a session
MAX_PROBES = 3


def read_capture_time(
    image_path: Path,
    log_callback: Callable[[str], None] = no_op_logger
) -> Optional[datetime]:
    """DateTimeOriginal of one image, or None if it has none."""
    try:
        with open(image_path, 'rb') as f:
            tags = exifread.process_file(f, details=False, stop_tag=EXIF_DATE_TAG)
    except OSError as e:
        log_callback(f"   [yellow]⚠️ Could not read {image_path.name}:[/yellow] {e}")
        return None
    except Exception as e:
        # exifread raises a grab-bag of errors on truncated maker notes
        log_callback(f"   [dim]No EXIF in {image_path.name}: {e}[/dim]")
        return None

    if not tags or EXIF_DATE_TAG not in tags:
        return None
    try:
        return datetime.strptime(str(tags[EXIF_DATE_TAG]).strip(), EXIF_DATE_FORMAT)
    except ValueError:
        return None


def find_capture_time(
    images: Iterable[Path],
    log_callback: Callable[[str], None] = no_op_logger,
    max_probes: int = MAX_PROBES
) -> Optional[datetime]:
    """Capture time of the first image that carries one."""
    for probes, image_path in enumerate(images, 1):
        captured = read_capture_time(image_path, log_callback)
        if captured is not None:
            return captured
        if probes >= max_probes:
            break
    return None
