"""
Principal Engagement - Persistence Layer.

============================================================
PURPOSE
============================================================
ORM mappings for the aggregate store.

============================================================
MODELS
============================================================
1. PrincipalActivitySummaryView: read-only mapping of the
   principal_activity_summary materialized view. Only the
   columns the engagement core consumes are mapped.
2. ActivityRefreshLog: one row per view refresh, for
   monitoring refresh health.

The view is created and maintained by SQL migrations. It is
declared on its own metadata so create_all() never tries to
create it as a table.

============================================================
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from database.engine import Base

from .scorer import as_utc
from .types import ActivityRollup


# ============================================================
# MATERIALIZED VIEW MAPPING
# ============================================================


class ViewBase(DeclarativeBase):
    """Declarative base for database views (not created by the app)."""
    pass


class PrincipalActivitySummaryView(ViewBase):
    """
    Per-principal rollup from principal_activity_summary.

    Rows exist only for organizations flagged is_principal that
    are not soft-deleted. Refreshed by
    refresh_principal_activity_summary() or REFRESH
    MATERIALIZED VIEW.
    """

    __tablename__ = "principal_activity_summary"

    principal_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True)

    principal_name: Mapped[str] = mapped_column(String(255), nullable=False)

    total_interactions: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_opportunities: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    product_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # GREATEST(last contact update, last interaction, latest opportunity)
    last_activity_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def to_rollup(self) -> ActivityRollup:
        """Convert the row to the scoring input record."""
        return ActivityRollup(
            principal_id=self.principal_id,
            principal_name=self.principal_name,
            total_interactions=self.total_interactions or 0,
            total_opportunities=self.total_opportunities or 0,
            product_count=self.product_count or 0,
            last_activity_at=as_utc(self.last_activity_date) if self.last_activity_date else None,
        )

    def __repr__(self) -> str:
        return f"<PrincipalActivitySummaryView {self.principal_id} {self.principal_name!r}>"


# ============================================================
# REFRESH LOG MODEL
# ============================================================


class ActivityRefreshLog(Base):
    """
    Record of one materialized view refresh.

    refresh_type is "manual" for explicit refreshes and
    "notification" for refreshes triggered by data changes.
    """

    __tablename__ = "activity_refresh_log"

    id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )

    view_name: Mapped[str] = mapped_column(String(100), nullable=False)

    refresh_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="manual",
        comment="manual or notification",
    )

    concurrently: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    success: Mapped[bool] = mapped_column(Boolean, nullable=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    duration_ms: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    refreshed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_activity_refresh_log_view_time", "view_name", "refreshed_at"),
    )

    def __repr__(self) -> str:
        status = "ok" if self.success else "failed"
        return f"<ActivityRefreshLog {self.view_name} {self.refresh_type} {status} at {self.refreshed_at}>"
