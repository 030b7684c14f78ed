#!/usr/bin/env python3
"""
Result directory management for the Snowcap evaluation.

Every experiment owns one directory, ``<results_root>/result_<id>``, holding
one artifact per sweep point. Artifact names are derived only from the sweep
point's identifying values, so two points of the same experiment never write
to the same file.

Example usage:
    from snowcap_eval.lib.results import ResultSink

    sink = ResultSink(config.results_root)
    out_dir = sink.ensure_directory(sink.result_dir(5))
    path = sink.artifact_path(5, point, "r{r}_v{v}.json")
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .errors import DirectoryError, PlanError
from .sweep import SweepPoint
from .utils import get_timestamp, result_dir_name, save_json

log = logging.getLogger("snowcap_eval.results")


class ResultSink:
    """Owns the ``result_<id>`` directories and the artifact naming scheme."""

    def __init__(self, results_root: Union[str, Path]):
        self.results_root = Path(results_root)

    def result_dir(self, experiment_id: int) -> Path:
        return self.results_root / result_dir_name(experiment_id)

    def ensure_directory(self, path: Union[str, Path]) -> Path:
        """
        Create ``path`` (and parents) if missing. An existing directory is fine.

        Raises:
            DirectoryError: If the path exists as a file or cannot be created.
        """
        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except FileExistsError:
            raise DirectoryError(f"Result path exists and is not a directory: {path}") from None
        except OSError as e:
            raise DirectoryError(f"Cannot create result directory {path}: {e}") from None
        return path

    def artifact_path(self, experiment_id: int, point: SweepPoint, pattern: str) -> Path:
        """
        Deterministic artifact path for one sweep point.

        ``pattern`` is formatted with the point's values, e.g. ``"{topo}.json"``
        or ``"r{r}_v{v}.json"``. The result must be a plain file name.
        """
        try:
            name = pattern.format(**point.params)
        except KeyError as exc:
            raise PlanError(
                f"Artifact pattern {pattern!r} needs {exc} which point '{point.label}' does not have"
            ) from None
        if not name or name in (".", "..") or "/" in name or "\\" in name:
            raise PlanError(f"Artifact name {name!r} must be a plain file name")
        return self.result_dir(experiment_id) / name

    def write_text(self, path: Path, text: str) -> None:
        """Write a captured-output artifact. The parent directory must already exist."""
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        log.debug(f"Wrote {len(text)} characters to {path}")

    def write_run_report(self, report: Dict[str, Any], directory: Optional[Path] = None) -> Path:
        """Persist the final run report as ``run_report_<timestamp>.json`` (default: results root)."""
        path = Path(directory or self.results_root) / f"run_report_{get_timestamp()}.json"
        save_json(report, path)
        return path
