"""Error taxonomy for sitedeploy.

Every error carries a stable ``code`` so API and CLI frontends can
surface it without string matching.
"""

from __future__ import annotations


class SiteDeployError(Exception):
    """Base error for sitedeploy operations."""

    def __init__(self, message: str, code: str = "sitedeploy_error") -> None:
        super().__init__(message)
        self.code = code


class ValidationError(SiteDeployError):
    """Raised when submission input is malformed or missing."""

    def __init__(self, message: str, code: str = "validation") -> None:
        super().__init__(message, code=code)


class NotFoundError(SiteDeployError):
    """Raised when a job or app id is unknown."""

    def __init__(self, kind: str, identifier: str, code: str = "not_found") -> None:
        super().__init__(f"{kind} not found: {identifier}", code=code)
        self.kind = kind
        self.identifier = identifier


class JobStateError(SiteDeployError):
    """Raised when a job status transition is not allowed."""

    def __init__(
        self, job_id: str, current: str, target: str, code: str = "invalid_transition"
    ) -> None:
        super().__init__(
            f"Job {job_id} cannot move from {current} to {target}", code=code
        )
        self.job_id = job_id
        self.current = current
        self.target = target


class TransientIOError(SiteDeployError):
    """Raised for filesystem contention that is worth retrying."""

    def __init__(self, message: str, code: str = "transient_io") -> None:
        super().__init__(message, code=code)


class BuildError(SiteDeployError):
    """Raised when staging, dependency resolution, compile or placement fails.

    Terminal for the job; the message is persisted verbatim.
    """

    def __init__(
        self,
        message: str,
        code: str = "build_failed",
        log_path: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.log_path = log_path


class BuildTimeoutError(BuildError):
    """Raised when a build subprocess exceeds its wall-clock bound."""

    def __init__(
        self,
        message: str,
        code: str = "build_timeout",
        log_path: str | None = None,
    ) -> None:
        super().__init__(message, code=code, log_path=log_path)


__all__ = [
    "BuildError",
    "BuildTimeoutError",
    "JobStateError",
    "NotFoundError",
    "SiteDeployError",
    "TransientIOError",
    "ValidationError",
]
