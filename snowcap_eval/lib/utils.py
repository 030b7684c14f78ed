#!/usr/bin/env python3
"""
Shared utilities for the Snowcap evaluation harness.

This module holds the filesystem layout of a Snowcap checkout, the names of
the external binaries, timeouts, and small formatting / JSON helpers used by
the rest of the library.

Standalone usage:
    python -m snowcap_eval.lib.utils --check-binaries
    python -m snowcap_eval.lib.utils --list-topologies
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

log = logging.getLogger("snowcap_eval.utils")

# =============================================================================
# Layout of a Snowcap checkout (relative to the project root)
# =============================================================================

EVAL_DIRNAME = "eval_sigcomm2021"
TOPOLOGY_DIRNAME = "topology_zoo"
PLOT_SCRIPTS_DIRNAME = "scripts"
PRECOMPUTED_DIRNAME = "precomputed_results"
BIN_SUBDIR = Path("target") / "release"

# =============================================================================
# External binaries (two roles)
# =============================================================================

BINARY_ANALYSIS = "analysis"
BINARY_SYNTHESIS = "synthesis"

BINARIES = {
    BINARY_ANALYSIS: "problem_probability",
    BINARY_SYNTHESIS: "snowcap_main",
}

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_SPEEDUP = 100
DEFAULT_RUST_LOG = "none"
DEFAULT_PYTHON = "python3"

TIMEOUT_POSTPROCESS = 3600    # 1 hour for a plotting / table script
TIMEOUT_SERVICE = 60          # readiness window for gns3server
SERVICE_FALLBACK_DELAY = 5    # fixed wait when no readiness probe is configured

GNS3_COMMAND = ("gns3server",)
GNS3_READY_URL = "http://127.0.0.1:3080/v2/version"


def default_project_root() -> Path:
    """Project root: ``$SNOWCAP_ROOT`` if set, else the working directory."""
    return Path(os.environ.get("SNOWCAP_ROOT", os.getcwd())).resolve()


def result_dir_name(experiment_id: int) -> str:
    return f"result_{experiment_id}"


# =============================================================================
# Topology listing
# =============================================================================

def list_topologies(topology_dir: Path) -> List[str]:
    """Return the sorted file names in the topology directory (like ``ls``)."""
    return sorted(p.name for p in Path(topology_dir).iterdir() if p.is_file())


# =============================================================================
# JSON Utilities
# =============================================================================

def save_json(data: Any, path: Path, indent: int = 2) -> None:
    """Save data to JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=indent)
    log.debug(f"Saved JSON to {path}")


def get_timestamp() -> str:
    """Return current timestamp string for file naming."""
    return datetime.now().strftime("%Y%m%d_%H%M%S")


# =============================================================================
# Output Formatting Utilities
# =============================================================================

def format_duration(seconds: float) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 0:
        return "0s"

    mins, secs = divmod(int(seconds), 60)
    hours, mins = divmod(mins, 60)
    days, hours = divmod(hours, 24)

    if days > 0:
        return f"{days}d {hours}h {mins}m"
    elif hours > 0:
        return f"{hours}h {mins}m {secs}s"
    elif mins > 0:
        return f"{mins}m {secs}s"
    elif seconds >= 1:
        return f"{secs}s"
    else:
        return f"{seconds*1000:.0f}ms"


def format_table(
    headers: List[str],
    rows: List[List[Any]],
    alignments: Optional[List[str]] = None,
    title: Optional[str] = None
) -> str:
    """
    Format data as an ASCII table.

    Args:
        headers: Column headers
        rows: Data rows (list of lists)
        alignments: Column alignments ('l', 'c', 'r') per column
        title: Optional table title

    Returns:
        Formatted table string
    """
    if not rows:
        return "No data"

    widths = [len(str(h)) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    # Right for numbers, left for text
    if alignments is None:
        alignments = ['r' if isinstance(rows[0][i], (int, float)) else 'l'
                      for i in range(len(headers))]

    def align(text: str, width: int, alignment: str) -> str:
        text = str(text)
        if alignment == 'l':
            return text.ljust(width)
        elif alignment == 'r':
            return text.rjust(width)
        else:
            return text.center(width)

    lines = []

    if title:
        total_width = sum(widths) + 3 * (len(headers) - 1) + 4
        lines.append("")
        lines.append("  " + "─" * (total_width - 2))
        lines.append(f"  {title}")
        lines.append("  " + "─" * (total_width - 2))

    lines.append("  │ " + " │ ".join(
        align(h, widths[i], 'c') for i, h in enumerate(headers)
    ) + " │")
    lines.append("  ├─" + "─┼─".join("─" * w for w in widths) + "─┤")
    for row in rows:
        lines.append("  │ " + " │ ".join(
            align(cell, widths[i], alignments[i]) for i, cell in enumerate(row)
        ) + " │")
    lines.append("  └─" + "─┴─".join("─" * w for w in widths) + "─┘")

    return "\n".join(lines)


# =============================================================================
# Standalone CLI
# =============================================================================

def main():
    """CLI for utility functions."""
    import argparse

    parser = argparse.ArgumentParser(description="Snowcap evaluation utilities")
    parser.add_argument("--root", type=Path, default=None,
                        help="Snowcap checkout (default: $SNOWCAP_ROOT or cwd)")
    parser.add_argument("--check-binaries", action="store_true",
                        help="Check that the release binaries are built")
    parser.add_argument("--list-topologies", action="store_true",
                        help="List the topology zoo")

    args = parser.parse_args()
    root = (args.root or default_project_root()).resolve()

    if args.check_binaries:
        print("Checking release binaries...")
        for role, name in BINARIES.items():
            path = root / BIN_SUBDIR / name
            ok = path.is_file() and os.access(path, os.X_OK)
            print(f"  {'✓' if ok else '✗'} {name} ({role})")

    if args.list_topologies:
        topologies = list_topologies(root / EVAL_DIRNAME / TOPOLOGY_DIRNAME)
        print(f"Found {len(topologies)} topologies:")
        for name in topologies[:20]:
            print(f"  {name}")
        if len(topologies) > 20:
            print(f"  ... and {len(topologies) - 20} more")


if __name__ == "__main__":
    main()
