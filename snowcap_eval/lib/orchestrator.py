"""
Top-level driver: runs the selected experiments in ascending id order.

For each experiment: ensure its result directory, run the sweep, then run the
plotting / table script, and record an :class:`ExperimentOutcome`. A broken
experiment (missing topology directory, unusable result directory, malformed
plan, background service not ready) is marked aborted and the next one
starts. Cancellation stops the run; experiments not reached are recorded as
not run.

In precomputed mode no binary is invoked; only the post-processing scripts
run, against the shipped results.
"""

import logging
import time
from typing import Iterable, Optional

from .catalog import ExperimentDefinition
from .config import EvalConfig
from .errors import DirectoryError, PlanError, ServiceStartupError, SweepInterrupted
from .postprocess import PostProcessor
from .progress import ProgressTracker
from .report import SUCCESS, ExperimentOutcome, RunReport
from .results import ResultSink
from .runner import CancelToken, ExperimentRunner

log = logging.getLogger("snowcap_eval.orchestrator")


class Orchestrator:

    def __init__(
        self,
        config: EvalConfig,
        progress: Optional[ProgressTracker] = None,
        cancel_token: Optional[CancelToken] = None,
        runner: Optional[ExperimentRunner] = None,
        postprocessor: Optional[PostProcessor] = None,
    ):
        self.config = config
        self.progress = progress or ProgressTracker()
        self.cancel_token = cancel_token or CancelToken()
        self.sink = ResultSink(config.results_root)
        self.runner = runner or ExperimentRunner(config, self.sink, cancel_token=self.cancel_token)
        self.postprocessor = postprocessor or PostProcessor(config)

    def run(self, definitions: Iterable[ExperimentDefinition], handle_signals: bool = False) -> RunReport:
        """
        Run ``definitions`` sequentially and return the run report.

        Args:
            definitions: Experiments to run (sorted by id here).
            handle_signals: Route SIGINT/SIGTERM to the cancel token for the
                duration of the run (main thread only).
        """
        definitions = sorted(definitions, key=lambda d: d.id)
        report = RunReport(speedup=self.config.speedup, budgets=self.config.budgets.to_dict())
        start = time.time()

        mode = "precomputed results" if self.config.precomputed else f"SPEEDUP={self.config.speedup}"
        self.progress.banner(
            "SNOWCAP EVALUATION",
            mode,
            f"Experiments: {', '.join(str(d.id) for d in definitions)}",
            "DRY RUN: no commands will be executed" if self.config.dry_run else "",
        )
        if not self.config.precomputed:
            budgets = self.config.budgets.to_dict()
            self.progress.stats_box("Iteration budgets", budgets)
            for name, value in budgets.items():
                if value == 0:
                    self.progress.warning(f"Budget '{name}' is 0; invocations using it will fail")

        restore = self.cancel_token.install_signal_handlers() if handle_signals else None
        try:
            for definition in definitions:
                if self.cancel_token.cancelled:
                    break
                outcome = self.run_experiment(definition)
                report.outcomes.append(outcome)
                if outcome.cancelled:
                    report.cancelled = True
        except KeyboardInterrupt as e:
            log.warning("Interrupted; stopping immediately")
            self.cancel_token.cancel("interrupted")
            if isinstance(e, SweepInterrupted):
                report.outcomes.append(e.outcome)
        finally:
            if restore is not None:
                restore()

        if self.cancel_token.cancelled:
            report.cancelled = True
            recorded = {o.experiment_id for o in report.outcomes}
            for skipped in definitions:
                if skipped.id not in recorded:
                    report.outcomes.append(ExperimentOutcome(
                        experiment_id=skipped.id, title=skipped.title, not_run=True,
                    ))

        report.duration = time.time() - start
        self.progress.final_summary(report)
        self._save_report(report)
        return report

    def run_experiment(self, definition: ExperimentDefinition) -> ExperimentOutcome:
        """
        One experiment: sweep, then post-processing. Never raises for
        per-experiment failures; an interrupt surfaces as SweepInterrupted.
        """
        self.progress.phase_start(f"Experiment {definition.id}", definition.title)
        start = time.time()
        result_dir = self.sink.result_dir(definition.id)

        if self.config.precomputed:
            outcome = ExperimentOutcome(
                experiment_id=definition.id, title=definition.title, result_dir=str(result_dir),
            )
        else:
            try:
                outcome = self.runner.run(definition)
            except SweepInterrupted:
                self.progress.phase_end("Interrupted", ok=False)
                raise
            except (DirectoryError, PlanError, ServiceStartupError) as e:
                log.error(f"Experiment {definition.id} aborted: {e}")
                self.progress.error(f"Experiment {definition.id} aborted: {e}")
                outcome = ExperimentOutcome(
                    experiment_id=definition.id,
                    title=definition.title,
                    result_dir=str(result_dir),
                    error=str(e),
                    aborted=True,
                    duration=time.time() - start,
                )
                self.progress.phase_end("Skipped post-processing", ok=False)
                return outcome

        if outcome.cancelled:
            log.warning(f"Experiment {definition.id} cancelled; skipping post-processing")
            self.progress.warning(f"Experiment {definition.id} cancelled; post-processing skipped")
        else:
            try:
                outcome.postprocess = self.postprocessor.run(definition, result_dir)
            except KeyboardInterrupt:
                outcome.cancelled = True
                outcome.duration = time.time() - start
                self.progress.phase_end("Interrupted during post-processing", ok=False)
                raise SweepInterrupted(outcome) from None

        outcome.duration = time.time() - start
        self.progress.experiment_summary(outcome)
        total = len(outcome.invocations)
        summary = f"{outcome.succeeded}/{total} invocations succeeded" if total else "post-processing only"
        self.progress.phase_end(summary, ok=outcome.status == SUCCESS)
        return outcome

    def _save_report(self, report: RunReport) -> None:
        if self.config.dry_run:
            return
        # Never write into the shipped precomputed results.
        directory = self.config.eval_dir if self.config.precomputed else None
        try:
            path = self.sink.write_run_report(report.to_dict(), directory=directory)
        except OSError as e:
            log.error(f"Could not write run report: {e}")
            return
        log.info(f"Run report written to {path}")
