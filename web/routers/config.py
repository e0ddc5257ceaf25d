"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from sitedeploy.config import Settings
from web.deps import get_app_settings

router = APIRouter()


@router.get("")
def get_config(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Get effective configuration.

    Returns:
        Current configuration as JSON.
    """
    return {
        "data_dir": str(settings.data_dir),
        "staging_dir": str(settings.staging_dir),
        "artifacts_dir": str(settings.artifacts_dir),
        "cache_dir": str(settings.cache_dir),
        "db_url": settings.db_url,
        "public_base_url": settings.public_base_url,
        "embedded_worker": settings.embedded_worker,
        "log_level": settings.log_level,
        "build_command": settings.build_command,
        "fallback_build_command": settings.fallback_build_command,
        "install_command": settings.install_command,
        "output_dirs": settings.output_dirs,
        "build_timeout": settings.build_timeout,
        "install_timeout": settings.install_timeout,
        "busy_interval": settings.busy_interval,
        "idle_interval": settings.idle_interval,
        "cache_keep": settings.cache_keep,
    }
