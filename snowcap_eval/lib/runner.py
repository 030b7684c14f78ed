"""
Sweep execution for one experiment.

:class:`ExperimentRunner` turns an :class:`ExperimentDefinition` into a plan
of invocations, then runs them one at a time. A failing point (bad exit
code, timeout, missing binary, missing artifact) is recorded and the sweep
moves on; only plan-level problems, an unusable result directory or a
background service that never came up abort the experiment. The runner never
starts post-processing; that is the orchestrator's job.

Cancellation is cooperative: the :class:`CancelToken` is checked before each
invocation, so the current process finishes (or dies with the signal) and
nothing new is started. Artifacts already written stay where they are.
"""

import logging
import signal
import threading
import time
from typing import Callable, List, Optional

from tqdm import tqdm

from .catalog import ExperimentDefinition
from .config import EvalConfig
from .errors import InvocationFailure, PlanError, SweepInterrupted
from .invocation import Invocation, build_invocation, run_invocation
from .report import FAILED, NOT_RUN, OK, SKIPPED, ExperimentOutcome, InvocationResult
from .results import ResultSink
from .service import BackgroundService

log = logging.getLogger("snowcap_eval.runner")


class CancelToken:
    """Set once to stop issuing new invocations."""

    def __init__(self):
        self._event = threading.Event()
        self.reason = ""

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def install_signal_handlers(self) -> Callable[[], None]:
        """
        Route SIGINT/SIGTERM to :meth:`cancel`. A second SIGINT interrupts
        immediately. Returns a function restoring the previous handlers.
        """
        previous = {
            signal.SIGINT: signal.getsignal(signal.SIGINT),
            signal.SIGTERM: signal.getsignal(signal.SIGTERM),
        }

        def _on_signal(signum, _frame):
            if self.cancelled and signum == signal.SIGINT:
                raise KeyboardInterrupt
            log.warning(f"Received signal {signum}; finishing the current invocation, then stopping")
            self.cancel(f"signal {signum}")

        signal.signal(signal.SIGINT, _on_signal)
        signal.signal(signal.SIGTERM, _on_signal)

        def _restore():
            for signum, handler in previous.items():
                signal.signal(signum, handler)

        return _restore


class ExperimentRunner:
    """Plans and executes the sweep of one experiment definition."""

    def __init__(
        self,
        config: EvalConfig,
        sink: ResultSink,
        cancel_token: Optional[CancelToken] = None,
        executor: Callable = run_invocation,
        service_factory: Callable = BackgroundService,
    ):
        self.config = config
        self.sink = sink
        self.cancel_token = cancel_token or CancelToken()
        self.executor = executor
        self.service_factory = service_factory

    # ─────────────────────────────────────────────────────────────────────────
    # Planning
    # ─────────────────────────────────────────────────────────────────────────

    def plan(self, definition: ExperimentDefinition) -> List[Invocation]:
        """
        Enumerate the sweep and render every invocation, before anything runs.

        Raises:
            DirectoryError: If a topology sweep has no topology directory.
            PlanError: If a template cannot be rendered or two invocations
                would write the same artifact.
        """
        invocations: List[Invocation] = []
        seen = {}
        for point in definition.sweep.points(self.config.topology_dir):
            for template in definition.templates_for(point):
                artifact = self.sink.artifact_path(definition.id, point, template.output)
                invocation = build_invocation(definition.id, template, point, self.config, artifact)
                if artifact in seen:
                    raise PlanError(
                        f"Experiment {definition.id}: '{invocation.label}' and '{seen[artifact]}' "
                        f"both write {artifact}"
                    )
                seen[artifact] = invocation.label
                invocations.append(invocation)
        return invocations

    # ─────────────────────────────────────────────────────────────────────────
    # Execution
    # ─────────────────────────────────────────────────────────────────────────

    def run(self, definition: ExperimentDefinition) -> ExperimentOutcome:
        """
        Run the whole sweep of ``definition``.

        Raises:
            DirectoryError, PlanError: The experiment cannot start.
            ServiceStartupError: The required background service is not ready.
            SweepInterrupted: A KeyboardInterrupt arrived mid-sweep; points not
                finished are recorded as not run on the attached outcome.
        """
        start = time.time()
        invocations = self.plan(definition)
        result_dir = self.sink.ensure_directory(self.sink.result_dir(definition.id))
        outcome = ExperimentOutcome(
            experiment_id=definition.id,
            title=definition.title,
            result_dir=str(result_dir),
        )
        log.info(f"Experiment {definition.id}: {len(invocations)} invocations -> {result_dir}")

        try:
            if definition.service is not None and not self.config.dry_run:
                with self.service_factory(
                    definition.service,
                    ready_url=self.config.service_url,
                    timeout=self.config.service_timeout,
                ):
                    self._run_all(definition, invocations, outcome)
            else:
                self._run_all(definition, invocations, outcome)
        except KeyboardInterrupt:
            self.cancel_token.cancel("interrupted")
            pending = self._mark_not_run(invocations, outcome, "interrupted")
            log.warning(f"Experiment {definition.id}: interrupted, {pending} invocations not run")
            outcome.duration = time.time() - start
            raise SweepInterrupted(outcome) from None

        outcome.duration = time.time() - start
        return outcome

    def _run_all(self, definition: ExperimentDefinition, invocations: List[Invocation],
                 outcome: ExperimentOutcome) -> None:
        bar = tqdm(
            total=len(invocations),
            desc=f"exp {definition.id}",
            unit="run",
            leave=False,
            disable=not self.config.show_progress,
        )
        try:
            for invocation in invocations:
                if self.cancel_token.cancelled:
                    pending = self._mark_not_run(invocations, outcome, self.cancel_token.reason)
                    log.warning(f"Experiment {definition.id}: cancelled, {pending} invocations not run")
                    break
                bar.set_postfix_str(invocation.label)
                outcome.invocations.append(self._run_one(invocation))
                bar.update(1)
        finally:
            bar.close()

    @staticmethod
    def _mark_not_run(invocations: List[Invocation], outcome: ExperimentOutcome, reason: str) -> int:
        """Record every invocation without a result yet as not run; returns how many."""
        outcome.cancelled = True
        pending = invocations[len(outcome.invocations):]
        for invocation in pending:
            outcome.invocations.append(InvocationResult(
                label=invocation.label,
                status=NOT_RUN,
                artifact=str(invocation.artifact),
                command=invocation.command_line,
                error=reason,
            ))
        return len(pending)

    def _run_one(self, invocation: Invocation) -> InvocationResult:
        result = InvocationResult(
            label=invocation.label,
            status=OK,
            artifact=str(invocation.artifact),
            command=invocation.command_line,
        )

        if self.config.skip_existing and invocation.artifact.exists():
            log.debug(f"Skipping {invocation.label}: {invocation.artifact} exists")
            result.status = SKIPPED
            return result

        t0 = time.perf_counter()
        try:
            invocation.validate(check_binary=not self.config.dry_run)
            if self.config.dry_run:
                log.info(f"  CMD: {invocation.command_line}")
                result.status = SKIPPED
                return result

            completed = self.executor(invocation, timeout=self.config.timeout, cwd=self.config.root)
            result.returncode = completed.returncode
            if invocation.capture_stdout:
                self.sink.write_text(invocation.artifact, completed.stdout or "")
            if not invocation.artifact.exists():
                raise InvocationFailure("Exited 0 but produced no artifact", returncode=completed.returncode)
        except InvocationFailure as e:
            result.status = FAILED
            result.error = str(e)
            if invocation.capture_stdout and e.stdout:
                try:
                    self.sink.write_text(invocation.artifact, e.stdout)
                except OSError as write_error:
                    log.error(f"Cannot write {invocation.artifact}: {write_error}")
            if e.returncode is not None:
                result.returncode = e.returncode
            log.error(f"Experiment {invocation.experiment_id} [{invocation.label}] failed: {e}")
        except OSError as e:
            result.status = FAILED
            result.error = f"Cannot write {invocation.artifact}: {e}"
            log.error(f"Experiment {invocation.experiment_id} [{invocation.label}] failed: {result.error}")
        finally:
            result.duration = time.perf_counter() - t0

        if result.status == OK:
            log.debug(f"Experiment {invocation.experiment_id} [{invocation.label}] ok ({result.duration:.1f}s)")
        return result
