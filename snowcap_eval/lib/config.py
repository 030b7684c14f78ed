"""
Configuration resolution for the Snowcap evaluation.

The speedup factor shortens the evaluation by dividing every baseline
iteration count. Each named budget is computed once, with truncating integer
division, and clamped to a per-budget floor so that the experiments that need
a minimum sample size keep it:

    ====== ====== ======
    name   base   floor
    ====== ====== ======
    large  10000  -
    medium 1000   -
    exp5   1000   500
    exp9   100    10
    exp10  1000   100
    ====== ====== ======

Everything the rest of the harness needs is folded into one frozen
:class:`EvalConfig`, built once by :func:`resolve_config` and passed around
explicitly.
"""

import logging
import shlex
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .errors import ConfigurationError
from .utils import (
    BIN_SUBDIR, BINARIES, DEFAULT_PYTHON, DEFAULT_RUST_LOG, DEFAULT_SPEEDUP,
    EVAL_DIRNAME, GNS3_READY_URL, PLOT_SCRIPTS_DIRNAME, PRECOMPUTED_DIRNAME,
    TIMEOUT_SERVICE, TOPOLOGY_DIRNAME, default_project_root,
)

log = logging.getLogger("snowcap_eval.config")

SPEEDUP_PROMPT = f"Enter a SPEEDUP factor (default: {DEFAULT_SPEEDUP}): "

# name -> (base, floor)
BUDGET_RULES = {
    "large": (10000, 0),
    "medium": (1000, 0),
    "exp5": (1000, 500),
    "exp9": (100, 10),
    "exp10": (1000, 100),
}


@dataclass(frozen=True)
class IterationBudgets:
    """Scaled iteration counts, one per named budget."""
    large: int
    medium: int
    exp5: int
    exp9: int
    exp10: int

    def get(self, name: str) -> int:
        if name not in BUDGET_RULES:
            raise KeyError(f"Unknown iteration budget: {name!r}")
        return getattr(self, name)

    def to_dict(self):
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class EvalConfig:
    """Immutable settings for one evaluation run."""
    speedup: int
    budgets: IterationBudgets
    root: Path
    verbose: bool = False
    threads_pp: Tuple[str, ...] = ()
    threads_sm: Tuple[str, ...] = ()
    rust_log: str = DEFAULT_RUST_LOG
    python: str = DEFAULT_PYTHON
    timeout: Optional[float] = None
    dry_run: bool = False
    skip_existing: bool = False
    precomputed: bool = False
    show_progress: bool = True
    service_timeout: float = TIMEOUT_SERVICE
    service_url: Optional[str] = GNS3_READY_URL

    @property
    def eval_dir(self) -> Path:
        return self.root / EVAL_DIRNAME

    @property
    def topology_dir(self) -> Path:
        return self.eval_dir / TOPOLOGY_DIRNAME

    @property
    def scripts_dir(self) -> Path:
        return self.eval_dir / PLOT_SCRIPTS_DIRNAME

    @property
    def results_root(self) -> Path:
        """Where ``result_<id>`` directories live (precomputed data in that mode)."""
        if self.precomputed:
            return self.eval_dir / PRECOMPUTED_DIRNAME
        return self.eval_dir

    @property
    def bin_dir(self) -> Path:
        return self.root / BIN_SUBDIR

    def binary(self, role: str) -> Path:
        try:
            return self.bin_dir / BINARIES[role]
        except KeyError:
            raise KeyError(f"Unknown binary role: {role!r}") from None


def parse_speedup(value: Union[str, int, None]) -> int:
    """
    Validate a user-supplied speedup factor.

    Blank input (or ``None``) selects the default of 100. Anything that is not
    a positive integer raises :class:`ConfigurationError`; the budgets divide
    by this value.
    """
    if value is None:
        return DEFAULT_SPEEDUP
    if isinstance(value, bool):
        raise ConfigurationError(f"SPEEDUP must be a positive integer, got {value!r}")
    if isinstance(value, int):
        speedup = value
    else:
        text = str(value).strip()
        if not text:
            return DEFAULT_SPEEDUP
        try:
            speedup = int(text, 10)
        except ValueError:
            raise ConfigurationError(
                f"SPEEDUP must be a positive integer, got {text!r}"
            ) from None
    if speedup < 1:
        raise ConfigurationError(f"SPEEDUP must be a positive integer, got {speedup}")
    return speedup


def prompt_speedup(input_fn: Callable[[str], str] = input) -> int:
    """Ask for the speedup factor on the terminal. EOF counts as blank input."""
    try:
        answer = input_fn(SPEEDUP_PROMPT)
    except EOFError:
        answer = ""
    return parse_speedup(answer)


def compute_budget(base: int, speedup: int, floor: int = 0) -> int:
    """``max(base // speedup, floor)``, truncating like the ``bc`` arithmetic it replaces."""
    if not isinstance(speedup, int) or isinstance(speedup, bool) or speedup < 1:
        raise ConfigurationError(f"SPEEDUP must be a positive integer, got {speedup!r}")
    return max(base // speedup, floor)


def resolve_budgets(speedup: int) -> IterationBudgets:
    values = {}
    for name, (base, floor) in BUDGET_RULES.items():
        values[name] = compute_budget(base, speedup, floor)
        if values[name] == 0:
            log.warning(
                f"Iteration budget '{name}' is 0 at SPEEDUP={speedup}; "
                f"invocations using it will be rejected"
            )
    return IterationBudgets(**values)


def split_threads(value: Optional[str]) -> Tuple[str, ...]:
    """Split a THREADS_* setting into argv tokens; empty means no tokens."""
    if not value:
        return ()
    try:
        return tuple(shlex.split(value))
    except ValueError as e:
        raise ConfigurationError(f"Cannot parse thread arguments {value!r}: {e}") from None


def resolve_config(
    speedup: Union[str, int, None] = None,
    root: Optional[Path] = None,
    threads_pp: Optional[str] = None,
    threads_sm: Optional[str] = None,
    **options,
) -> EvalConfig:
    """
    Build the run configuration.

    Args:
        speedup: Raw speedup factor (``None`` or blank selects 100).
        root: Snowcap checkout; defaults to ``$SNOWCAP_ROOT`` or the cwd.
        threads_pp: Thread flags for the analysis binary, passed through unmodified.
        threads_sm: Thread flags for the synthesis binary, passed through unmodified.
        **options: Any other :class:`EvalConfig` field.

    Raises:
        ConfigurationError: On an invalid factor or option.
    """
    factor = parse_speedup(speedup)
    budgets = resolve_budgets(factor)

    known = {f.name for f in fields(EvalConfig)} - {
        "speedup", "budgets", "root", "threads_pp", "threads_sm"}
    unknown = set(options) - known
    if unknown:
        raise ConfigurationError(f"Unknown configuration options: {sorted(unknown)}")

    timeout = options.get("timeout")
    if timeout is not None and timeout <= 0:
        raise ConfigurationError(f"Timeout must be positive, got {timeout}")
    service_timeout = options.get("service_timeout", TIMEOUT_SERVICE)
    if service_timeout <= 0:
        raise ConfigurationError(f"Service timeout must be positive, got {service_timeout}")

    config = EvalConfig(
        speedup=factor,
        budgets=budgets,
        root=Path(root).resolve() if root else default_project_root(),
        threads_pp=split_threads(threads_pp),
        threads_sm=split_threads(threads_sm),
        **options,
    )
    log.info(f"Using SPEEDUP={config.speedup}")
    log.debug(f"Iteration budgets: {budgets.to_dict()}")
    return config
