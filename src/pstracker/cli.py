#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
PSTracker command line.

    pstracker [<collection>] [--approve] [--resync] [--sort <field>] [--workers N]
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import List, Optional

from rich.console import Console
from rich.table import Table

from .config import load_app_config, save_app_config
from .descriptors import get_summarizer
from .registry import SessionRegistry
from .scanner import ScanTracker, approve_pending, resync_stale, scan_collection
from .session import Session, collection_stats, sort_sessions
from .status import (
    FIELD_TABLE,
    NO_DATA_SCORE,
    Field,
    field_from_string,
    field_short_name,
    status_short_name,
)

console = Console()

# Score 0 (best) through 5 (no data)
SCORE_STYLES = ["green", "green", "yellow", "yellow", "red", "dim"]


def log_to_console(message: str) -> None:
    console.print(message)


def _scored(text: str, score: int) -> str:
    return f"[{SCORE_STYLES[min(score, NO_DATA_SCORE)]}]{text}[/]"


def _count(value: int) -> str:
    return "?" if value < 0 else str(value)


def build_table(sessions: List[Session], sort_by: Field) -> Table:
    table = Table(title=f"Sessions (sorted by {field_short_name(sort_by)})")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Raw", justify="right")
    table.add_column("Proc", justify="right")
    table.add_column("Masks", justify="right")
    table.add_column("Align")
    table.add_column("Dense")
    table.add_column("Model")
    table.add_column("Texture")

    for session in sessions:
        scores = session.phase_scores()
        name = session.name or session.folder_name
        if not session.initialized:
            name = f"{name} [yellow](needs approval)[/yellow]"
        elif not session.synchronized:
            name = f"{name} [yellow](out of sync)[/yellow]"
        table.add_row(
            str(session.id) if session.id_assigned else "-",
            name,
            status_short_name(session.status),
            _count(session.cached_raw_count),
            _count(session.cached_processed_count),
            _count(session.cached_mask_count),
            _scored(session.describe_align_phase(), scores['align']),
            _scored(session.describe_dense_cloud_phase(), scores['dense_cloud']),
            _scored(session.describe_model_phase(), scores['model']),
            _scored(session.describe_texture_phase(), scores['texture']),
        )
    return table


def format_stats_line(sessions: List[Session]) -> str:
    stats = collection_stats(sessions)
    return (f"{stats['total']} projects ({stats['unique_dirs']} unique), "
            f"{stats['without_project']} w/o project files, "
            f"{stats['without_image_align']} w/o image align, "
            f"{stats['without_dense_cloud']} w/o dense cloud, "
            f"{stats['without_model']} w/o model")


def _option_value(argv: List[str], flag: str) -> Optional[str]:
    if flag in argv:
        idx = argv.index(flag)
        if idx + 1 < len(argv):
            return argv[idx + 1]
    return None


def print_usage() -> None:
    console.print("\n [bold]PSTracker - Usage[/bold]")
    console.print("\n  pstracker [<collection>] [options]")
    console.print("\nOptions:")
    console.print("  --approve        : Convert folders that have no session record yet")
    console.print("  --resync         : Re-derive sessions whose record is out of sync")
    console.print("  --sort <field>   : Sort by one of: " + ", ".join(row[2] for row in FIELD_TABLE))
    console.print("  --workers <n>    : Worker threads for scanning")
    console.print("  --help, -h       : Show this help message")


def main(argv: Optional[List[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    if "--help" in argv or "-h" in argv:
        print_usage()
        return 0

    app_config = load_app_config()

    sort_arg = _option_value(argv, "--sort")
    workers_arg = _option_value(argv, "--workers")
    option_values = {v for v in (sort_arg, workers_arg) if v}
    positional = [a for a in argv if not a.startswith("-") and a not in option_values]

    if positional:
        collection = Path(positional[0]).expanduser()
    elif app_config['collection_path']:
        collection = app_config['collection_path']
    else:
        console.print("[bold red]✗ No collection folder given and none configured.[/bold red]")
        print_usage()
        return 2

    if not collection.is_dir():
        console.print(f"[bold red]✗ Collection folder not found:[/bold red] {collection}")
        return 2

    try:
        max_workers = int(workers_arg) if workers_arg else app_config['max_workers']
    except ValueError:
        console.print(f"[red]✗ --workers expects a number, got {workers_arg}[/red]")
        return 2

    sort_by = field_from_string(sort_arg or app_config['sort_by'])
    registry = SessionRegistry(sort_by=sort_by)
    summarizer = get_summarizer(app_config['descriptor_provider'])
    tracker = ScanTracker()
    stop_event = threading.Event()

    try:
        sessions = scan_collection(
            collection, registry,
            summarizer=summarizer,
            log_callback=log_to_console,
            max_workers=max_workers,
            auto_resync=app_config['auto_resync'],
            stop_event=stop_event,
            tracker=tracker,
        )

        if "--resync" in argv:
            resync_stale(sessions, log_callback=log_to_console, max_workers=max_workers,
                         stop_event=stop_event, tracker=tracker)

        if "--approve" in argv:
            approve_pending(registry, log_callback=log_to_console, stop_event=stop_event)
    except KeyboardInterrupt:
        stop_event.set()
        console.print("\n[yellow]🛑 Stopped.[/yellow]")
        return 130

    console.print(build_table(sort_sessions(sessions, registry.sort_by), registry.sort_by))
    console.print(format_stats_line(sessions))
    stats = tracker.stats
    console.print(f"[dim]{stats['needs_approval']} awaiting approval, "
                  f"{stats['out_of_sync']} out of sync, {stats['resynced']} resynced, "
                  f"{stats['ignored']} ignored ({stats['time']})[/dim]")

    app_config['collection_path'] = collection
    app_config['sort_by'] = field_short_name(registry.sort_by)
    save_app_config(app_config)
    return 0


if __name__ == "__main__":
    sys.exit(main())
