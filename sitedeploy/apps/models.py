"""App ORM model.

An App is a named, mutable source tree kept by the producer. Deploying an
app snapshots its current files into a new Job.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from sitedeploy.db import Base
from sitedeploy.jobs.models import utcnow


class App(Base):
    """ORM model for saved source trees."""

    __tablename__ = "apps"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    files: Mapped[dict[str, str]] = mapped_column(JSON, nullable=False)
    latest_deploy_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        """Return string representation of App."""
        return f"<App(id='{self.id}', files={len(self.files or {})})>"


__all__ = ["App"]
