"""Build orchestration module.

This module handles:
- Staging area preparation
- Scaffolding backfill
- Dependency cache keys and the shared dependency cache
- Running the compile command (with one fallback)
- Artifact placement and manifest generation
- Post-build hooks
"""

from sitedeploy.builds.orchestrator import BuildOrchestrator

__all__ = ["BuildOrchestrator"]

# Submodules are imported directly, e.g. sitedeploy.builds.dependency_cache
