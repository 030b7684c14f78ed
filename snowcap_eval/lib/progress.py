"""
Console progress reporting for an evaluation run.

This module provides:
- ConsoleColors: ANSI color codes for terminal output
- ProgressTracker: banners, per-experiment phases, point status lines and
  the end-of-run summary (which points failed, in which experiment)

The per-invocation progress bar is tqdm's (see runner.py); this tracker only
prints between sweeps, so the two never interleave.

Example usage:
    progress = ProgressTracker()
    progress.banner("SNOWCAP EVALUATION", "SPEEDUP=100")
    progress.phase_start("Experiment 3", "Chain gadget")
    ...
    progress.phase_end("20/20 invocations succeeded")
    progress.final_summary(report)
"""

import sys
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, TextIO

from .report import SUCCESS, ExperimentOutcome, RunReport
from .utils import format_duration, format_table


class ConsoleColors:
    """ANSI color codes for terminal output."""

    HEADER = '\033[95m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    END = '\033[0m'

    @classmethod
    def colorize(cls, text: str, color: str, enabled: bool = True) -> str:
        if not enabled:
            return text
        color_code = getattr(cls, color.upper(), None)
        if color_code:
            return f"{color_code}{text}{cls.END}"
        return text


class ProgressTracker:
    """
    Visual progress reporting for a multi-experiment run.

    Each experiment is one phase. Warnings are kept for the summary.
    """

    def __init__(self, use_colors: bool = True, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdout
        self.use_colors = use_colors and self.stream.isatty()
        self.start_time = time.time()

        self.current_phase: Optional[str] = None
        self.phase_start_time: Optional[float] = None
        self.warnings: List[str] = []

    def _output(self, text: str = ""):
        print(text, file=self.stream, flush=True)

    def _color(self, text: str, color: str) -> str:
        return ConsoleColors.colorize(text, color, self.use_colors)

    # ─────────────────────────────────────────────────────────────────────────
    # Banners and Headers
    # ─────────────────────────────────────────────────────────────────────────

    def banner(self, title: str, *subtitles: str, width: int = 70):
        """Print a large banner for major sections."""
        self._output()
        self._output("╔" + "═" * (width - 2) + "╗")
        self._output("║ " + self._color(title.center(width - 4), 'BOLD') + " ║")
        for subtitle in subtitles:
            if subtitle:
                self._output("║ " + self._color(subtitle.center(width - 4), 'CYAN') + " ║")
        self._output("╚" + "═" * (width - 2) + "╝")
        self._output()

    # ─────────────────────────────────────────────────────────────────────────
    # Phase Tracking
    # ─────────────────────────────────────────────────────────────────────────

    def phase_start(self, phase_name: str, description: str = None):
        self.current_phase = phase_name
        self.phase_start_time = time.time()

        self._output()
        self._output("┌" + "─" * 68 + "┐")
        self._output("│" + self._color(f"  PHASE: {phase_name}".ljust(68), 'HEADER') + "│")
        if description:
            self._output("│  " + description[:66].ljust(66) + "│")
        self._output("│  " + f"Started at: {datetime.now().strftime('%H:%M:%S')}".ljust(66) + "│")
        self._output("└" + "─" * 68 + "┘")

    def phase_end(self, summary: str = None, ok: bool = True):
        """
        End the current phase.

        Args:
            summary: Optional one-line summary
            ok: Print the status line green (True) or yellow (False)
        """
        elapsed = time.time() - self.phase_start_time if self.phase_start_time else 0.0
        mark = "✓" if ok else "⚠"
        status = f"{mark} Phase '{self.current_phase}' finished in {format_duration(elapsed)}"
        self._output("─" * 70)
        self._output(self._color(status, 'GREEN' if ok else 'YELLOW'))
        if summary:
            self._output(f"  {summary}")
        self._output("─" * 70)

        self.current_phase = None
        self.phase_start_time = None

    def substep(self, message: str, status: str = "..."):
        """Show a status line: OK, DONE, SKIP, FAIL, WARN, RUN."""
        status_colors = {
            '...': 'YELLOW',
            'OK': 'GREEN',
            'DONE': 'GREEN',
            'SKIP': 'CYAN',
            'FAIL': 'RED',
            'WARN': 'YELLOW',
            'RUN': 'CYAN',
        }
        status_str = self._color(f"[{status:4s}]", status_colors.get(status, 'END'))
        self._output(f"    {status_str} {message}")

    # ─────────────────────────────────────────────────────────────────────────
    # Messages
    # ─────────────────────────────────────────────────────────────────────────

    def warning(self, message: str, record: bool = True):
        self._output(self._color(f"  ⚠ {message}", 'YELLOW'))
        if record:
            self.warnings.append(message)

    def error(self, message: str):
        self._output(self._color(f"  ✗ {message}", 'RED'))

    def stats_box(self, title: str, stats: Dict[str, Any], width: int = 50):
        self._output()
        self._output("  ┌" + "─" * width + "┐")
        self._output("  │ " + self._color(title.center(width - 2), 'BOLD') + " │")
        self._output("  ├" + "─" * width + "┤")
        for key, value in stats.items():
            self._output("  │ " + f"  {key}: {value}".ljust(width - 2) + " │")
        self._output("  └" + "─" * width + "┘")

    # ─────────────────────────────────────────────────────────────────────────
    # Final Summary
    # ─────────────────────────────────────────────────────────────────────────

    def experiment_summary(self, outcome: ExperimentOutcome):
        """Status lines for one finished experiment."""
        for failure in outcome.failures:
            self.substep(f"{failure.label}: {failure.error}", "FAIL")
        post = outcome.postprocess
        if post is not None:
            if post.skipped:
                self.substep(f"{post.script} (dry run)", "SKIP")
            elif post.success:
                self.substep(post.script, "OK")
            else:
                self.substep(f"{post.script}: {post.error}", "FAIL")

    def final_summary(self, report: RunReport):
        """Print the run summary: per-experiment table, then every failed point."""
        title = "EVALUATION COMPLETE" if report.status == SUCCESS else f"EVALUATION {report.status.upper()}"
        self.banner(title, f"Total time: {format_duration(time.time() - self.start_time)}")

        rows = []
        for outcome in report.outcomes:
            post = outcome.postprocess
            if post is None:
                post_status = "-"
            elif post.skipped:
                post_status = "skipped"
            else:
                post_status = "ok" if post.success else "FAILED"
            rows.append([
                outcome.experiment_id,
                outcome.status,
                outcome.succeeded,
                len(outcome.failures),
                post_status,
                format_duration(outcome.duration),
            ])
        if rows:
            self._output(format_table(
                ["Exp", "Status", "OK", "Failed", "Post-processing", "Time"], rows,
                title="Experiments",
            ))

        failed = report.failed_points
        if failed:
            count = sum(len(v) for v in failed.values())
            self._output(self._color(f"\nFailed points: {count}", 'RED'))
            for exp_id, failures in failed.items():
                self._output(f"  Experiment {exp_id}:")
                for failure in failures:
                    self._output(f"    - {failure.label}: {failure.error}")

        aborted = [o for o in report.outcomes if o.aborted]
        for outcome in aborted:
            self._output(self._color(f"\nExperiment {outcome.experiment_id} aborted: {outcome.error}", 'RED'))

        if report.fatal_error:
            self._output(self._color(f"\nFatal: {report.fatal_error}", 'RED'))
        if report.cancelled:
            self._output(self._color("\nRun was cancelled; remaining points were not run", 'YELLOW'))

        if self.warnings:
            self._output(self._color(f"\nWarnings: {len(self.warnings)}", 'YELLOW'))
            for warn in self.warnings[:5]:
                self._output(f"  - {warn}")
            if len(self.warnings) > 5:
                self._output(f"  ... and {len(self.warnings) - 5} more")
