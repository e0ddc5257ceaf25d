"""Router modules for FastAPI web API."""

from web.routers import apps, config, deploy, deployments, health

__all__ = ["apps", "config", "deploy", "deployments", "health"]
