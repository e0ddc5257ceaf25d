"""Saved source trees that can be deployed by id."""

from sitedeploy.apps.models import App

__all__ = ["App"]
