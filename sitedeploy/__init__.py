"""sitedeploy - Build and serve generated static web applications.

This package turns producer-supplied source trees into compiled static
artifacts through a durable job queue, a single polling worker, and a
status-aware artifact server.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
