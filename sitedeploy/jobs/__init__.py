"""Job queue module.

This module handles:
- The Job entity and its status state machine
- Submission, claiming, completion and crash recovery
- Source variants that materialize a job's source tree
"""

from sitedeploy.jobs.models import Job

__all__ = ["Job"]
