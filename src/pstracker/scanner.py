#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker Scanner
Discovers session folders under a collection root and synchronizes them
on a bounded worker pool.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .config import MAX_WORKERS
from .descriptors import DescriptorSummarizer
from .registry import SessionRegistry
from .classifier import no_op_logger
from .session import Session


# ==============================================================================
# STATS TRACKER
# ==============================================================================

class ScanTracker:
    """
    Running counters for a scan, pushed to an optional callback.

    Usage:
        tracker = ScanTracker(callback=my_callback_function)
        tracker.start_timer()
        tracker.increment('sessions')
        tracker.stop_timer()
    """

    def __init__(self, callback: Optional[Callable[[str, Any], None]] = None):
        self.callback = callback
        self._lock = threading.Lock()
        self._stats: Dict[str, Any] = {}
        self._start_time = None
        self.reset()

    @property
    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._stats)

    def update(self, key: str, value: Any) -> None:
        with self._lock:
            self._stats[key] = value
        if self.callback:
            self.callback(key, value)

    def increment(self, key: str, amount: int = 1) -> None:
        with self._lock:
            value = self._stats.get(key, 0) + amount
            self._stats[key] = value
        if self.callback:
            self.callback(key, value)

    def start_timer(self) -> None:
        self._start_time = datetime.now()
        self.update('time', 'Running...')

    def stop_timer(self) -> None:
        if self._start_time:
            total_seconds = int((datetime.now() - self._start_time).total_seconds())
            minutes, seconds = divmod(total_seconds, 60)
            self.update('time', f"{minutes}m {seconds}s" if minutes > 0 else f"{seconds}s")

    def reset(self) -> None:
        with self._lock:
            self._stats = {
                'sessions': 0,
                'needs_approval': 0,
                'out_of_sync': 0,
                'resynced': 0,
                'ignored': 0,
                'time': '--',
            }
        self._start_time = None


# ==============================================================================
# DISCOVERY & BULK SYNCHRONIZATION
# ==============================================================================

def discover_session_dirs(collection_root: Path) -> List[Path]:
    """Immediate, non-hidden sub-folders of the collection root, by name."""
    if not collection_root.is_dir():
        return []
    return sorted(
        (p for p in collection_root.iterdir() if p.is_dir() and not p.name.startswith('.')),
        key=lambda p: p.name
    )


def _load_session(
    folder: Path,
    registry: SessionRegistry,
    summarizer: Optional[DescriptorSummarizer],
    auto_resync: bool,
    log_callback: Callable[[str], None]
) -> Session:
    session = Session(folder, registry, summarizer=summarizer, log_callback=log_callback)
    if auto_resync and session.initialized and not session.explicitly_ignored and not session.synchronized:
        session.update_out_of_sync()
    return session


def scan_collection(
    collection_root: Path,
    registry: SessionRegistry,
    summarizer: Optional[DescriptorSummarizer] = None,
    log_callback: Callable[[str], None] = no_op_logger,
    max_workers: int = MAX_WORKERS,
    auto_resync: bool = False,
    stop_event: Optional[threading.Event] = None,
    tracker: Optional[ScanTracker] = None
) -> List[Session]:
    """
    Build a Session for every folder in the collection.

    The registry's approval queue is cleared first and refilled by folders
    that have no record yet. Explicitly ignored sessions are dropped from
    the result. With auto_resync, stale sessions are re-derived in place.

    stop_event is checked between sessions; sessions already handed to a
    worker finish so no record is left half-written.
    """
    registry.clear_needs_approval()
    folders = discover_session_dirs(collection_root)
    if not folders:
        log_callback(f"[yellow]No session folders found in {collection_root}[/yellow]")
        return []

    if tracker:
        tracker.start_timer()
    log_callback(f"[grey]Scanning {len(folders)} folders in: {collection_root.name}[/grey]")

    sessions: List[Session] = []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_folder = {}
        for folder in folders:
            if stop_event and stop_event.is_set():
                break
            future = executor.submit(_load_session, folder, registry, summarizer, auto_resync, log_callback)
            future_to_folder[future] = folder

        for i, future in enumerate(as_completed(future_to_folder)):
            if stop_event and stop_event.is_set():
                log_callback("\n[yellow]🛑 Scan stopped by user.[/yellow]")
                executor.shutdown(wait=True, cancel_futures=True)
                break

            folder = future_to_folder[future]
            try:
                session = future.result()
            except Exception as e:
                log_callback(f"   [red]✗ {folder.name}: {e}[/red]")
                continue

            log_callback(f"   [grey]Examined {i + 1}/{len(future_to_folder)}: {folder.name}[/grey]")
            if session.explicitly_ignored:
                if tracker:
                    tracker.increment('ignored')
                continue

            sessions.append(session)
            if tracker:
                tracker.increment('sessions')
                if not session.initialized:
                    tracker.increment('needs_approval')
                elif not session.synchronized:
                    tracker.increment('out_of_sync')

    if tracker:
        tracker.stop_timer()
    log_callback(f"[green]✓ Found {len(sessions)} sessions, "
                 f"{len(registry.needs_approval())} awaiting approval.[/green]")
    return sessions


def resync_stale(
    sessions: List[Session],
    log_callback: Callable[[str], None] = no_op_logger,
    max_workers: int = MAX_WORKERS,
    stop_event: Optional[threading.Event] = None,
    tracker: Optional[ScanTracker] = None
) -> List[Session]:
    """Run update_out_of_sync() on every initialized, stale session."""
    stale = [s for s in sessions if s.initialized and not s.synchronized and not s.explicitly_ignored]
    if not stale:
        return []

    log_callback(f"[grey]Resynchronizing {len(stale)} sessions...[/grey]")
    done: List[Session] = []
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        future_to_session = {}
        for session in stale:
            if stop_event and stop_event.is_set():
                break
            future_to_session[executor.submit(session.update_out_of_sync)] = session

        for future in as_completed(future_to_session):
            session = future_to_session[future]
            try:
                future.result()
            except Exception as e:
                log_callback(f"   [red]✗ {session.folder_name}: {e}[/red]")
                continue
            done.append(session)
            if tracker:
                tracker.increment('resynced')
    return done


def approve_pending(
    registry: SessionRegistry,
    log_callback: Callable[[str], None] = no_op_logger,
    stop_event: Optional[threading.Event] = None
) -> List[Session]:
    """
    Convert every session waiting for approval, then clear the queue.

    Runs one session at a time since conversion moves files around.
    """
    converted: List[Session] = []
    pending = registry.needs_approval()
    for idx, session in enumerate(pending, 1):
        if stop_event and stop_event.is_set():
            log_callback("\n[yellow]🛑 Approval stopped by user.[/yellow]")
            return converted
        log_callback(f"   [{idx}/{len(pending)}] {session.folder_name}")
        session.convert_to_session()
        converted.append(session)
    registry.clear_needs_approval()
    return converted
