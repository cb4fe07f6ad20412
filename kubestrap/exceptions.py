"""Error taxonomy for kubestrap.

Every error is terminal for the process. The bootstrap command reports the
stage that raised it and exits non-zero.
"""
from typing import Optional


class KubestrapError(Exception):
    """Base class for all fatal kubestrap errors."""

    exit_code = 1

    def __init__(self, message: str):
        super().__init__(message)
        self.stage: Optional[str] = None


class ConfigError(KubestrapError):
    """Invalid or ambiguous command line input."""


class HostEnvironmentError(KubestrapError):
    """The host cannot be bootstrapped (wrong OS, missing privilege)."""


class OperationFailure(KubestrapError):
    """An external install/init/reset/apply operation failed."""

    def __init__(self, step: str, detail: Optional[str] = None):
        self.step = step
        self.detail = detail
        message = f"{step} failed"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class VerificationTimeout(KubestrapError):
    """A verification check exhausted its attempt budget."""

    def __init__(self, subject: str, adjective: str, attempts: int, last_error: Optional[str] = None):
        self.subject = subject
        self.adjective = adjective
        self.attempts = attempts
        message = f"{subject} not {adjective} after {attempts} attempts"
        if last_error:
            message += f" (last error: {last_error})"
        super().__init__(message)
