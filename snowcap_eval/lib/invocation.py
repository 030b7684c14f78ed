"""
Typed command building and blocking execution of the Snowcap binaries.

An :class:`ArgumentTemplate` describes one kind of call (which binary, which
tokens, which iteration budget, where the artifact goes). Rendering it for a
sweep point yields an :class:`Invocation`: a fully resolved argv plus the
artifact path and environment overrides. Invocations are validated before any
process is spawned, so a malformed call is reported as a failure of that one
point instead of reaching the binary.

Template tokens use ``str.format`` placeholders:

    {iters}      the template's iteration budget
    {output}     the artifact path
    {topo}       topology file name (topology sweeps)
    {topo_path}  full path of that topology file
    {zoo}        the topology directory
    {n} {r} {v} {name}   sweep values

A token that is exactly ``{threads_pp}`` or ``{threads_sm}`` is replaced by
zero or more pass-through thread flags (``THREADS_PP`` / ``THREADS_SM``).
"""

import logging
import os
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import EvalConfig
from .errors import InvocationFailure, PlanError
from .sweep import SweepPoint
from .utils import BINARIES

log = logging.getLogger("snowcap_eval.invocation")

# splice token -> EvalConfig attribute
THREAD_TOKENS = {
    "{threads_pp}": "threads_pp",
    "{threads_sm}": "threads_sm",
}


def _render(value: str, context: Mapping[str, Any]) -> str:
    try:
        return str(value).format(**context)
    except KeyError as exc:
        missing = str(exc).strip("'")
        raise PlanError(f"Missing template variable '{missing}' in value: {value!r}") from exc


@dataclass(frozen=True)
class ArgumentTemplate:
    """One kind of call to an external binary."""
    binary: str
    args: Tuple[str, ...]
    output: str
    budget: Optional[str] = None
    variant: str = ""
    rust_log: Optional[str] = None
    capture_stdout: bool = False

    def __post_init__(self):
        if self.binary not in BINARIES:
            raise ValueError(f"Unknown binary role {self.binary!r}; expected one of {sorted(BINARIES)}")


@dataclass(frozen=True)
class Invocation:
    """A fully rendered call for one sweep point."""
    experiment_id: int
    point: SweepPoint
    argv: Tuple[str, ...]
    artifact: Path
    env: Tuple[Tuple[str, str], ...] = ()
    capture_stdout: bool = False
    iterations: Optional[int] = None
    variant: str = ""

    @property
    def label(self) -> str:
        return f"{self.point.label} [{self.variant}]" if self.variant else self.point.label

    @property
    def command_line(self) -> str:
        env = " ".join(f"{k}={shlex.quote(v)}" for k, v in self.env)
        cmd = " ".join(shlex.quote(a) for a in self.argv)
        return f"{env} {cmd}" if env else cmd

    def validate(self, check_binary: bool = True) -> None:
        """
        Check the invocation before spawning it.

        Raises:
            InvocationFailure: If the argv is empty, the iteration budget is
                not positive, or the binary is missing / not executable.
        """
        if not self.argv or not all(isinstance(a, str) and a for a in self.argv):
            raise InvocationFailure(f"Malformed argv: {self.argv!r}")
        if self.iterations is not None and self.iterations < 1:
            raise InvocationFailure(f"Iteration budget is {self.iterations}; refusing to run with -i {self.iterations}")
        if check_binary:
            binary = Path(self.argv[0])
            if not binary.is_file() or not os.access(binary, os.X_OK):
                raise InvocationFailure(f"Binary not found or not executable: {binary}")


def build_invocation(
    experiment_id: int,
    template: ArgumentTemplate,
    point: SweepPoint,
    config: EvalConfig,
    artifact: Path,
) -> Invocation:
    """Render ``template`` for ``point``. Rendering problems raise :class:`PlanError`."""
    context: Dict[str, Any] = dict(point.params)
    context["output"] = str(artifact)
    context["zoo"] = str(config.topology_dir)
    if "topo" in context:
        context["topo_path"] = str(config.topology_dir / context["topo"])

    iterations = None
    if template.budget is not None:
        try:
            iterations = config.budgets.get(template.budget)
        except KeyError as e:
            raise PlanError(str(e)) from None
        context["iters"] = iterations

    argv = [str(config.binary(template.binary))]
    for token in template.args:
        if token in THREAD_TOKENS:
            argv.extend(getattr(config, THREAD_TOKENS[token]))
        else:
            argv.append(_render(token, context))

    return Invocation(
        experiment_id=experiment_id,
        point=point,
        argv=tuple(argv),
        artifact=artifact,
        env=(("RUST_LOG", template.rust_log or config.rust_log),),
        capture_stdout=template.capture_stdout,
        iterations=iterations,
        variant=template.variant,
    )


def run_invocation(
    invocation: Invocation,
    timeout: Optional[float] = None,
    cwd: Optional[Path] = None,
) -> subprocess.CompletedProcess:
    """
    Run one invocation to completion.

    Args:
        invocation: The rendered call.
        timeout: Seconds before the process is killed (None waits forever).
        cwd: Working directory.

    Returns:
        The CompletedProcess (stdout/stderr captured as text, undecodable
        bytes replaced).

    Raises:
        InvocationFailure: If the process cannot be started, times out, or
            exits non-zero.
    """
    env = os.environ.copy()
    env.update(dict(invocation.env))
    log.debug(f"Running: {invocation.command_line}")
    try:
        result = subprocess.run(
            list(invocation.argv),
            timeout=timeout,
            capture_output=True,
            text=True,
            errors="replace",
            cwd=cwd,
            env=env,
        )
    except subprocess.TimeoutExpired:
        raise InvocationFailure(f"Timed out after {timeout}s") from None
    except OSError as e:
        raise InvocationFailure(f"Could not start {invocation.argv[0]}: {e}") from None

    if result.returncode != 0:
        tail = (result.stderr or result.stdout or "").strip().splitlines()[-5:]
        detail = f": {' | '.join(tail)}" if tail else ""
        raise InvocationFailure(
            f"Exit code {result.returncode}{detail}", returncode=result.returncode, stdout=result.stdout,
        )
    return result
