"""
Snowcap evaluation library - running the SIGCOMM 2021 experiments.

This library provides:
- Speedup / iteration budget resolution and the run configuration
- Sweep shapes (topology zoo, threshold bands, nested ranges, fixed runs)
- Typed command building and validation for the Snowcap binaries
- The catalog of the eleven experiments
- Sequential sweep execution with per-point failure isolation
- Background service management (gns3server)
- Post-processing (plot / table scripts)
- Progress tracking and the final run report

**Module Overview:**
- `utils`:        Layout constants, binary names, JSON / formatting helpers
- `errors`:       Exception hierarchy
- `config`:       SPEEDUP parsing, IterationBudgets, EvalConfig
- `sweep`:        SweepPoint and the four sweep shapes
- `invocation`:   ArgumentTemplate, Invocation, build / run
- `catalog`:      EXPERIMENTS, get_experiment, select_experiments
- `results`:      ResultSink (result_<id> directories, artifact names)
- `service`:      BackgroundService with HTTP readiness probe
- `runner`:       ExperimentRunner, CancelToken
- `postprocess`:  PostProcessor
- `report`:       InvocationResult, ExperimentOutcome, RunReport
- `progress`:     ProgressTracker
- `orchestrator`: Orchestrator

**Standalone Usage:**
    python -m snowcap_eval.lib.utils --check-binaries --list-topologies

**Library Usage:**
    from snowcap_eval.lib import resolve_config, select_experiments, Orchestrator

    config = resolve_config(speedup=100)
    report = Orchestrator(config).run(select_experiments([3, 4]))
"""

__version__ = "1.0.0"

from .errors import (
    EvaluationError,
    ConfigurationError,
    DirectoryError,
    PlanError,
    InvocationFailure,
    ServiceStartupError,
    SweepInterrupted,
)
from .config import (
    DEFAULT_SPEEDUP,
    SPEEDUP_PROMPT,
    IterationBudgets,
    EvalConfig,
    parse_speedup,
    prompt_speedup,
    compute_budget,
    resolve_budgets,
    resolve_config,
)
from .sweep import (
    SweepPoint,
    TopologySweep,
    ThresholdSweep,
    NestedSweep,
    FixedSweep,
)
from .invocation import (
    ArgumentTemplate,
    Invocation,
    build_invocation,
    run_invocation,
)
from .catalog import (
    EXPERIMENTS,
    EXPERIMENT_IDS,
    ExperimentDefinition,
    PostProcessCommand,
    get_experiment,
    select_experiments,
)
from .results import ResultSink
from .service import BackgroundService, ServiceSpec, GNS3_SERVICE
from .runner import CancelToken, ExperimentRunner
from .postprocess import PostProcessor
from .report import (
    InvocationResult,
    PostProcessResult,
    ExperimentOutcome,
    RunReport,
    EXIT_SUCCESS,
    EXIT_FAILURE,
    EXIT_CONFIG_ERROR,
)
from .progress import ProgressTracker
from .orchestrator import Orchestrator

__all__ = [
    # errors
    "EvaluationError", "ConfigurationError", "DirectoryError", "PlanError",
    "InvocationFailure", "ServiceStartupError", "SweepInterrupted",
    # config
    "DEFAULT_SPEEDUP", "SPEEDUP_PROMPT", "IterationBudgets", "EvalConfig",
    "parse_speedup", "prompt_speedup", "compute_budget", "resolve_budgets", "resolve_config",
    # sweeps and invocations
    "SweepPoint", "TopologySweep", "ThresholdSweep", "NestedSweep", "FixedSweep",
    "ArgumentTemplate", "Invocation", "build_invocation", "run_invocation",
    # catalog
    "EXPERIMENTS", "EXPERIMENT_IDS", "ExperimentDefinition", "PostProcessCommand",
    "get_experiment", "select_experiments",
    # execution
    "ResultSink", "BackgroundService", "ServiceSpec", "GNS3_SERVICE",
    "CancelToken", "ExperimentRunner", "PostProcessor", "Orchestrator",
    # reporting
    "InvocationResult", "PostProcessResult", "ExperimentOutcome", "RunReport",
    "EXIT_SUCCESS", "EXIT_FAILURE", "EXIT_CONFIG_ERROR", "ProgressTracker",
]
