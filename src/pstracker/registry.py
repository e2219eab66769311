#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Session Registry
Process-wide ID counter, approval queue, and active sort field.

One registry is shared by every session in a scan. All state is guarded by
a single lock so sessions may be examined from worker threads.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, List

from .status import Field

if TYPE_CHECKING:
    from .session import Session


class SessionRegistry:
    def __init__(self, first_id: int = 1, sort_by: Field = Field.PROJECT_ID):
        self._lock = threading.Lock()
        self._next_id = first_id
        self._needs_approval: List["Session"] = []
        self._sort_by = sort_by

    # --- IDs ---

    @property
    def next_id(self) -> int:
        with self._lock:
            return self._next_id

    def allocate_id(self) -> int:
        """Hand out the next free ID and advance the counter."""
        with self._lock:
            allocated = self._next_id
            self._next_id += 1
            return allocated

    def reserve_id(self, session_id: int) -> None:
        """Make sure the counter is past session_id. Never moves backwards."""
        with self._lock:
            if session_id >= self._next_id:
                self._next_id = session_id + 1

    # --- Approval queue ---

    def request_approval(self, session: "Session") -> None:
        with self._lock:
            if session not in self._needs_approval:
                self._needs_approval.append(session)

    def needs_approval(self) -> List["Session"]:
        """Snapshot of sessions still waiting for first-time conversion."""
        with self._lock:
            return list(self._needs_approval)

    def clear_needs_approval(self) -> None:
        with self._lock:
            self._needs_approval.clear()

    # --- Sorting ---

    @property
    def sort_by(self) -> Field:
        with self._lock:
            return self._sort_by

    @sort_by.setter
    def sort_by(self, field: Field) -> None:
        with self._lock:
            self._sort_by = field
