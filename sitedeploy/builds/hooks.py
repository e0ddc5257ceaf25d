"""Post-build hooks.

Hooks are called with the job id after a job becomes ready. They may
write auxiliary metadata elsewhere but never affect job status: a failing
hook is logged and otherwise ignored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

import httpx

logger = logging.getLogger(__name__)

PostBuildHook = Callable[[str], None]


class WebhookHook:
    """POST ``{id, status, artifact_url}`` to a URL.

    Args:
        url: Endpoint to notify.
        artifact_url: Maps a job id to its public deployment URL.
        timeout: Request timeout in seconds.
        client: Optional HTTPX client (a new one is created per call if unset).
    """

    def __init__(
        self,
        url: str,
        artifact_url: Callable[[str], str],
        timeout: float = 10.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.artifact_url = artifact_url
        self.timeout = timeout
        self.client = client

    def __call__(self, job_id: str) -> None:
        payload = {
            "id": job_id,
            "status": "ready",
            "artifact_url": self.artifact_url(job_id),
        }
        if self.client is not None:
            response = self.client.post(self.url, json=payload, timeout=self.timeout)
        else:
            with httpx.Client() as client:
                response = client.post(self.url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        logger.info("Notified %s for job %s", self.url, job_id, extra={"job_id": job_id})


def run_hooks(hooks: Iterable[PostBuildHook], job_id: str) -> int:
    """Run every hook, logging failures.

    Returns:
        Number of hooks that failed.
    """
    failures = 0
    for hook in hooks:
        try:
            hook(job_id)
        except Exception:
            failures += 1
            logger.exception(
                "Post-build hook %r failed for job %s",
                hook,
                job_id,
                extra={"job_id": job_id},
            )
    return failures


__all__ = ["PostBuildHook", "WebhookHook", "run_hooks"]
