"""
Structured results of an evaluation run.

One :class:`InvocationResult` per planned invocation, one
:class:`ExperimentOutcome` per experiment, and a :class:`RunReport` that
tells full success, partial failure, cancellation and fatal abort apart and
maps them to the process exit status.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

# InvocationResult.status
OK = "ok"
FAILED = "failed"
SKIPPED = "skipped"
NOT_RUN = "not_run"

# ExperimentOutcome.status (also NOT_RUN) / RunReport.status
SUCCESS = "success"
PARTIAL = "partial"
ABORTED = "aborted"
CANCELLED = "cancelled"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2


@dataclass
class InvocationResult:
    label: str
    status: str
    artifact: str
    command: str = ""
    returncode: Optional[int] = None
    error: str = ""
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status == FAILED


@dataclass
class PostProcessResult:
    script: str
    success: bool
    returncode: Optional[int] = None
    error: str = ""
    skipped: bool = False


@dataclass
class ExperimentOutcome:
    experiment_id: int
    title: str
    result_dir: str = ""
    invocations: List[InvocationResult] = field(default_factory=list)
    postprocess: Optional[PostProcessResult] = None
    error: str = ""
    aborted: bool = False
    cancelled: bool = False
    not_run: bool = False
    duration: float = 0.0

    @property
    def failures(self) -> List[InvocationResult]:
        return [r for r in self.invocations if r.failed]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.invocations if r.status == OK)

    @property
    def status(self) -> str:
        if self.not_run:
            return NOT_RUN
        if self.aborted:
            return ABORTED
        if self.cancelled:
            return CANCELLED
        if self.failures or (self.postprocess is not None and not self.postprocess.success):
            return PARTIAL
        return SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status
        return d


@dataclass
class RunReport:
    speedup: int
    budgets: Dict[str, int]
    outcomes: List[ExperimentOutcome] = field(default_factory=list)
    cancelled: bool = False
    fatal_error: str = ""
    duration: float = 0.0

    @property
    def status(self) -> str:
        if self.fatal_error:
            return ABORTED
        if self.cancelled:
            return CANCELLED
        if any(o.status != SUCCESS for o in self.outcomes):
            return PARTIAL
        return SUCCESS

    @property
    def exit_code(self) -> int:
        return EXIT_SUCCESS if self.status == SUCCESS else EXIT_FAILURE

    @property
    def failed_points(self) -> Dict[int, List[InvocationResult]]:
        return {o.experiment_id: o.failures for o in self.outcomes if o.failures}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "exit_code": self.exit_code,
            "speedup": self.speedup,
            "budgets": dict(self.budgets),
            "cancelled": self.cancelled,
            "fatal_error": self.fatal_error,
            "duration": self.duration,
            "experiments": [o.to_dict() for o in self.outcomes],
        }
