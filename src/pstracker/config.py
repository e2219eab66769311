#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Configuration
File-type tables, folder names, defaults, and configuration file management.
"""

from __future__ import annotations

import os
import configparser
from pathlib import Path
from typing import Dict, Any

# ==============================================================================
# CONFIGURATION CONSTANTS
# ==============================================================================

# --- Path Settings ---
CONFIG_FILE_PATH = Path.home() / ".pstracker.conf"
META_FILE_NAME = "psh_meta.ini"

# --- Image Sub-Folder Names ---
RAW_FOLDER_NAME = "Raw"
PROCESSED_FOLDER_NAME = "Processed"
MASKS_FOLDER_NAME = "Masks"

# --- File Name Filters ---
# Raw extensions from https://en.wikipedia.org/wiki/Raw_image_format
PROJECT_FILE_PATTERNS = ["*.psz", "*.psx"]

_IMAGE_EXTENSIONS = ["jpg", "jpeg", "tif", "tiff", "pgm", "ppm", "png", "bmp", "exr"]

PROCESSED_FILE_PATTERNS = [f"*.{ext}" for ext in _IMAGE_EXTENSIONS]
MASK_FILE_PATTERNS = [f"*_mask.{ext}" for ext in _IMAGE_EXTENSIONS]
RAW_FILE_PATTERNS = [
    "*.3fr",
    "*.ari", "*.arw",
    "*.bay",
    "*.crw", "*.cr2", "*.cr3",
    "*.cap",
    "*.data", "*.dcs", "*.dcr", "*.dng",
    "*.drf",
    "*.eip", "*.erf",
    "*.fff",
    "*.gpr",
    "*.iiq",
    "*.k25", "*.kdc",
    "*.mdc", "*.mef", "*.mos", "*.mrw",
    "*.nef", "*.nrw",
    "*.obm", "*.orf",
    "*.pef", "*.ptx", "*.pxn",
    "*.r3d", "*.raf", "*.raw", "*.rwl", "*.rw2", "*.rwz",
    "*.sr2", "*.srf", "*.srw",
    "*.x3f",
]

# --- Workflow Settings ---
MAX_WORKERS = 5
DEFAULT_AUTO_RESYNC = False
DEFAULT_SORT_BY = "ID"
DEFAULT_DESCRIPTOR_PROVIDER = "none"

# --- Persisted Record Formats ---
# DateTime is stored as "Fri May 3 14:30:00 2024" with English names,
# independent of the current locale
DATETIME_DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
DATETIME_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun",
                        "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


# ==============================================================================
# CONFIGURATION FILE MANAGEMENT
# ==============================================================================

def load_app_config() -> Dict[str, Any]:
    """
    Load settings from ~/.pstracker.conf with fallback defaults.

    Environment variables win over the config file.

    Returns:
        Dictionary containing all application settings
    """
    parser = configparser.ConfigParser()
    config_loaded = False

    if CONFIG_FILE_PATH.exists():
        try:
            parser.read(CONFIG_FILE_PATH)
            config_loaded = True
        except configparser.Error:
            pass  # Will use fallbacks

    config = {}

    config['config_file_found'] = config_loaded
    config['config_file_path'] = str(CONFIG_FILE_PATH)

    collection = os.environ.get(
        'PSTRACKER_COLLECTION',
        parser.get('scan', 'collection_path', fallback=None)
    )
    config['collection_path'] = Path(collection).expanduser() if collection else None

    try:
        config['max_workers'] = int(os.environ.get(
            'PSTRACKER_MAX_WORKERS',
            parser.getint('scan', 'max_workers', fallback=MAX_WORKERS)
        ))
    except ValueError:
        config['max_workers'] = MAX_WORKERS

    config['auto_resync'] = parser.getboolean(
        'scan', 'auto_resync', fallback=DEFAULT_AUTO_RESYNC
    )

    config['sort_by'] = parser.get(
        'view', 'sort_by', fallback=DEFAULT_SORT_BY
    )

    config['descriptor_provider'] = os.environ.get(
        'PSTRACKER_DESCRIPTOR_PROVIDER',
        parser.get('descriptors', 'provider', fallback=DEFAULT_DESCRIPTOR_PROVIDER)
    )

    return config


def save_app_config(config: Dict[str, Any]) -> bool:
    """
    Save settings back to ~/.pstracker.conf.

    Only the settings that change during normal use are written; anything
    else already in the file is preserved.

    Args:
        config: Dictionary with settings to save

    Returns:
        True on success, False on error
    """
    parser = configparser.ConfigParser()

    if CONFIG_FILE_PATH.exists():
        try:
            parser.read(CONFIG_FILE_PATH)
        except configparser.Error:
            pass

    if not parser.has_section('scan'):
        parser.add_section('scan')
    if not parser.has_section('view'):
        parser.add_section('view')

    if config.get('collection_path'):
        parser.set('scan', 'collection_path', str(config['collection_path']))

    if 'auto_resync' in config:
        parser.set('scan', 'auto_resync', 'true' if config['auto_resync'] else 'false')

    if config.get('sort_by'):
        parser.set('view', 'sort_by', str(config['sort_by']))

    try:
        with open(CONFIG_FILE_PATH, 'w') as f:
            parser.write(f)
        return True
    except OSError:
        return False
