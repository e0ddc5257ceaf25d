"""FastAPI web application for sitedeploy.

Serves the submission/status API and the built deployments. All business
logic is delegated to core modules in sitedeploy/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
