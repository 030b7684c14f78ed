"""
Error taxonomy for the Snowcap evaluation harness.

Only ``ConfigurationError`` stops the whole run. Every other error is scoped:
``DirectoryError``, ``PlanError`` and ``ServiceStartupError`` abort the one
experiment that raised them, and ``InvocationFailure`` is recorded for a
single sweep point while the sweep carries on. ``SweepInterrupted`` is the
hard-stop path: a ``KeyboardInterrupt`` holding the partial outcome.
"""


class EvaluationError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(EvaluationError):
    """Invalid speedup factor or unusable settings. Raised before any invocation."""


class DirectoryError(EvaluationError):
    """A result or input directory cannot be created or read."""


class PlanError(EvaluationError):
    """An experiment's invocation plan is malformed (e.g. colliding artifact paths)."""


class InvocationFailure(EvaluationError):
    """A single invocation could not be validated, started, or exited non-zero."""

    def __init__(self, message: str, returncode: int = None, stdout: str = None):
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout


class ServiceStartupError(EvaluationError):
    """A background service never became ready."""


class SweepInterrupted(KeyboardInterrupt):
    """
    An interrupt that arrived mid-experiment. Carries the partial
    :class:`ExperimentOutcome` so the run report can still record it.
    """

    def __init__(self, outcome):
        super().__init__(f"experiment {outcome.experiment_id} interrupted")
        self.outcome = outcome
