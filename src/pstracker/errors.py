#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Errors
Error taxonomy for session synchronization.

None of these are fatal to the process. The Session catches them, reports
through its log callback and carries on with whatever state is reachable.
"""

from __future__ import annotations


class PSTrackerError(Exception):
    """Base class for all session tracking errors."""


class IoError(PSTrackerError):
    """A directory or file operation failed (mkdir, rename, listing)."""


class DescriptorParseError(PSTrackerError):
    """The project descriptor file is absent or could not be summarized."""


class MalformedNameConvention(PSTrackerError):
    """A session folder name does not follow '<id> <name>'."""


class PersistenceCorruption(PSTrackerError):
    """A session metadata file exists but cannot be read."""
