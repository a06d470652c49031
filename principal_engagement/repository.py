"""
Principal Engagement - Repository.

============================================================
PURPOSE
============================================================
Repository over the aggregate store.

Provides clean interface for:
- Reading the rollup of one principal
- Reading rollups for all or a batch of principals
- Refreshing the materialized view
- Querying refresh history

Reads are plain blocking queries. Callers own any timeout
and retry policy around them.

============================================================
"""

import logging
import time
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy import desc, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .config import RefreshConfig
from .models import ActivityRefreshLog, PrincipalActivitySummaryView
from .types import ActivityRollup, RollupNotFoundError, RollupSourceError

logger = logging.getLogger(__name__)


def _coerce_uuid(value: Union[UUID, str]) -> UUID:
    if isinstance(value, UUID):
        return value
    return UUID(str(value))


class ActivityRollupRepository:
    """
    Repository for principal activity rollups.

    ============================================================
    METHODS
    ============================================================
    - get_rollup: Rollup of one principal
    - list_rollups: Rollups of all or selected principals
    - refresh: Refresh the materialized view and log it
    - latest_refresh: Most recent refresh record

    ============================================================
    """

    def __init__(self, session: Session, refresh_config: Optional[RefreshConfig] = None):
        """
        Initialize repository with database session.

        Args:
            session: SQLAlchemy session
            refresh_config: View name and refresh settings
        """
        self._session = session
        self._refresh_config = refresh_config or RefreshConfig()

    # --------------------------------------------------------
    # READ OPERATIONS
    # --------------------------------------------------------

    def get_rollup(self, principal_id: Union[UUID, str]) -> ActivityRollup:
        """
        Get the current rollup of one principal.

        Raises:
            RollupNotFoundError: If the principal has no row in the view
            RollupSourceError: If the query fails
        """
        try:
            key = _coerce_uuid(principal_id)
        except ValueError:
            raise RollupNotFoundError(principal_id)

        try:
            row = self._session.get(PrincipalActivitySummaryView, key)
        except SQLAlchemyError as e:
            logger.error(f"Failed to read rollup for principal {principal_id}: {e}")
            raise RollupSourceError(f"Rollup read failed: {e}") from e

        if row is None:
            raise RollupNotFoundError(principal_id)

        return row.to_rollup()

    def list_rollups(
        self,
        principal_ids: Optional[Iterable[Union[UUID, str]]] = None,
    ) -> List[ActivityRollup]:
        """
        Get rollups for all principals, or only the given ones.

        Unknown ids are skipped. Results are ordered by name.

        Raises:
            ValueError: If an id is not a valid UUID
            RollupSourceError: If the query fails
        """
        stmt = select(PrincipalActivitySummaryView).order_by(
            PrincipalActivitySummaryView.principal_name
        )

        if principal_ids is not None:
            keys = [_coerce_uuid(pid) for pid in principal_ids]
            if not keys:
                return []
            stmt = stmt.where(PrincipalActivitySummaryView.principal_id.in_(keys))

        try:
            rows = self._session.execute(stmt).scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed to list principal rollups: {e}")
            raise RollupSourceError(f"Rollup read failed: {e}") from e

        logger.debug(f"Loaded {len(rows)} principal rollups")
        return [row.to_rollup() for row in rows]

    # --------------------------------------------------------
    # REFRESH OPERATIONS
    # --------------------------------------------------------

    def refresh(
        self,
        concurrently: Optional[bool] = None,
        refresh_type: str = "manual",
        now: Optional[datetime] = None,
    ) -> ActivityRefreshLog:
        """
        Refresh the materialized view and record the outcome.

        The refresh log row is added to the session; committing is
        the caller's responsibility. On failure the session is
        rolled back before the failure row is added, so committing
        afterwards keeps the failure record.

        Args:
            concurrently: Override the configured CONCURRENTLY flag
            refresh_type: "manual" or "notification"
            now: Timestamp to record (defaults to current UTC time)

        Returns:
            The ActivityRefreshLog for a successful refresh

        Raises:
            RollupSourceError: If the refresh fails
        """
        config = self._refresh_config
        use_concurrently = config.concurrently if concurrently is None else concurrently
        statement = "REFRESH MATERIALIZED VIEW {}{}".format(
            "CONCURRENTLY " if use_concurrently else "",
            config.view_name,
        )

        started = time.monotonic()
        error: Optional[SQLAlchemyError] = None

        try:
            self._session.execute(text(statement))
        except SQLAlchemyError as e:
            error = e
            self._session.rollback()

        log = ActivityRefreshLog(
            view_name=config.view_name,
            refresh_type=refresh_type,
            concurrently=use_concurrently,
            success=error is None,
            error_message=str(error) if error is not None else None,
            duration_ms=round((time.monotonic() - started) * 1000, 3),
            refreshed_at=now or datetime.now(timezone.utc),
        )
        self._session.add(log)
        self._session.flush()

        if error is not None:
            logger.error(f"Failed to refresh {config.view_name}: {error}")
            raise RollupSourceError(f"Refresh of {config.view_name} failed: {error}") from error

        logger.info(
            f"Refreshed {config.view_name} ({refresh_type}, "
            f"{'concurrent' if use_concurrently else 'blocking'}) in {log.duration_ms}ms"
        )
        return log

    def latest_refresh(self) -> Optional[ActivityRefreshLog]:
        """Return the most recent refresh record for the view, if any."""
        stmt = (
            select(ActivityRefreshLog)
            .where(ActivityRefreshLog.view_name == self._refresh_config.view_name)
            .order_by(desc(ActivityRefreshLog.refreshed_at))
            .limit(1)
        )
        return self._session.execute(stmt).scalars().first()
