"""
Plot / table generation after an experiment's sweep.

Each experiment names one script under ``eval_sigcomm2021/scripts``. It is run
with the configured interpreter from the project root, after the sweep
finished, even when some points failed. With ``precomputed`` set the script
gets ``PRECOMPUTED_DATA=yes`` and reads the shipped results instead.

A failing script is reported in the :class:`PostProcessResult`, never raised,
so the remaining experiments still run.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List

from .catalog import ExperimentDefinition
from .config import EvalConfig
from .errors import PlanError
from .report import PostProcessResult
from .utils import TIMEOUT_POSTPROCESS

log = logging.getLogger("snowcap_eval.postprocess")


class PostProcessor:

    def __init__(self, config: EvalConfig, timeout: float = TIMEOUT_POSTPROCESS):
        self.config = config
        self.timeout = timeout

    def command(self, definition: ExperimentDefinition, result_dir: Path) -> List[str]:
        post = definition.postprocess
        context = {"exp_id": definition.id, "result_dir": str(result_dir)}
        try:
            args = [a.format(**context) for a in post.args]
        except KeyError as e:
            raise PlanError(f"Post-processing argument for experiment {definition.id} needs {e}") from None
        return [self.config.python, str(self.config.scripts_dir / post.script), *args]

    def run(self, definition: ExperimentDefinition, result_dir: Path) -> PostProcessResult:
        script = definition.postprocess.script
        try:
            cmd = self.command(definition, result_dir)
        except PlanError as e:
            log.error(str(e))
            return PostProcessResult(script=script, success=False, error=str(e))

        if self.config.dry_run:
            log.info(f"  CMD: {' '.join(cmd)}")
            return PostProcessResult(script=script, success=True, skipped=True)

        env = os.environ.copy()
        if self.config.precomputed:
            env["PRECOMPUTED_DATA"] = "yes"

        log.info(f"Post-processing experiment {definition.id}: {script}")
        try:
            result = subprocess.run(
                cmd,
                cwd=self.config.root,
                env=env,
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            error = f"{script} timed out after {self.timeout}s"
            log.error(error)
            return PostProcessResult(script=script, success=False, error=error)
        except OSError as e:
            error = f"Could not start {cmd[0]}: {e}"
            log.error(error)
            return PostProcessResult(script=script, success=False, error=error)

        if result.stdout:
            log.debug(result.stdout.rstrip())
        if result.returncode != 0:
            tail = (result.stderr or "").strip().splitlines()[-5:]
            error = f"{script} exited with code {result.returncode}"
            if tail:
                error += ": " + " | ".join(tail)
            log.error(error)
            return PostProcessResult(script=script, success=False, returncode=result.returncode, error=error)

        return PostProcessResult(script=script, success=True, returncode=0)
