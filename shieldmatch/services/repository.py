"""Datastore access for projects, contractors and match requests"""

import logging
import uuid
from collections.abc import Sequence
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shieldmatch.db.models import (
    Contractor,
    ContractorCapacity,
    MatchRequest,
    MatchRequestStatus,
    Project,
    ProjectStatus,
)
from shieldmatch.exceptions import (
    DuplicateMatchRequestError,
    PermissionDeniedError,
    PersistenceError,
)
from shieldmatch.schemas.matching import MatchRequestRecord

logger = logging.getLogger(__name__)

INSUFFICIENT_PRIVILEGE = "42501"
UNIQUE_VIOLATION = "23505"

_UPSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _error_code(error: DBAPIError) -> str | None:
    orig = error.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_error(error: SQLAlchemyError, action: str) -> PersistenceError:
    """Map a SQLAlchemy error onto the ShieldMatch persistence hierarchy"""
    message = str(getattr(error, "orig", None) or error)
    code = _error_code(error) if isinstance(error, DBAPIError) else None
    lowered = message.lower()

    if code == INSUFFICIENT_PRIVILEGE or "permission denied" in lowered:
        return PermissionDeniedError(f"{action}: {message}", code=code)
    if isinstance(error, IntegrityError) and (
        code == UNIQUE_VIOLATION or "duplicate" in lowered or "unique" in lowered
    ):
        return DuplicateMatchRequestError(f"{action}: {message}", code=code)
    return PersistenceError(f"{action}: {message}", code=code)


class MatchRepository:
    """Query/upsert interface used by the matching workflow"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except SQLAlchemyError as e:
            logger.warning(f"Rollback failed: {e}")

    async def get_project(self, project_id: UUID) -> Project | None:
        try:
            return await self.db.get(Project, project_id)
        except SQLAlchemyError as e:
            raise translate_error(e, f"Failed to load project {project_id}") from e

    async def get_contractor(self, contractor_id: UUID) -> Contractor | None:
        try:
            return await self.db.get(Contractor, contractor_id)
        except SQLAlchemyError as e:
            raise translate_error(e, f"Failed to load contractor {contractor_id}") from e

    async def list_active_contractors(self) -> list[Contractor]:
        """All contractors currently accepting work"""
        stmt = (
            select(Contractor)
            .where(Contractor.capacity == ContractorCapacity.ACTIVE)
            .order_by(Contractor.created_at, Contractor.id)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise translate_error(e, "Failed to fetch contractors") from e
        return list(result.scalars().all())

    async def upsert_match_requests(self, records: Sequence[MatchRequestRecord]) -> list[MatchRequestRecord]:
        """Insert or refresh one row per (project, contractor) pair"""
        if not records:
            return []

        dialect = self.db.get_bind().dialect.name
        builder = _UPSERT_BUILDERS.get(dialect)
        if builder is None:
            raise PersistenceError(f"Upsert is not supported on the {dialect} dialect")

        rows = [
            {
                "id": uuid.uuid4(),
                "project_id": record.project_id,
                "contractor_id": record.contractor_id,
                "status": record.status,
            }
            for record in records
        ]
        stmt = builder(MatchRequest).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=[MatchRequest.project_id, MatchRequest.contractor_id],
            set_={
                "status": stmt.excluded.status,
                "responded_at": None,
                "updated_at": func.now(),
            },
        ).returning(MatchRequest)

        try:
            result = await self.db.scalars(stmt, execution_options={"populate_existing": True})
            persisted = list(result.all())
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise translate_error(e, "Failed to create match requests") from e

        logger.info(f"Upserted {len(persisted)} match requests")
        return [MatchRequestRecord.model_validate(row) for row in persisted]

    async def list_match_requests(self, project_id: UUID) -> list[MatchRequestRecord]:
        stmt = (
            select(MatchRequest)
            .where(MatchRequest.project_id == project_id)
            .order_by(MatchRequest.created_at)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise translate_error(e, f"Failed to load match requests for project {project_id}") from e
        return [MatchRequestRecord.model_validate(row) for row in result.scalars().all()]

    async def list_invited_contractors(self, project_id: UUID) -> list[Contractor]:
        """Contractors holding a match request for the project"""
        stmt = (
            select(Contractor)
            .join(MatchRequest, MatchRequest.contractor_id == Contractor.id)
            .where(MatchRequest.project_id == project_id)
            .order_by(MatchRequest.created_at)
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise translate_error(e, f"Failed to load invited contractors for project {project_id}") from e
        return list(result.scalars().all())

    async def update_project_status(self, project_id: UUID, status: ProjectStatus) -> None:
        stmt = update(Project).where(Project.id == project_id).values(status=status)
        try:
            await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise translate_error(e, f"Failed to update project {project_id}") from e

    async def update_match_request_status(
        self,
        project_id: UUID,
        contractor_id: UUID,
        status: MatchRequestStatus,
    ) -> bool:
        """Record a contractor's response; False when no invitation exists"""
        stmt = (
            update(MatchRequest)
            .where(
                and_(
                    MatchRequest.project_id == project_id,
                    MatchRequest.contractor_id == contractor_id,
                )
            )
            .values(status=status, responded_at=datetime.now(timezone.utc))
        )
        try:
            result = await self.db.execute(stmt)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise translate_error(e, f"Failed to record response for project {project_id}") from e
        return result.rowcount > 0

    async def accept_match_request(self, project_id: UUID, contractor_id: UUID) -> bool:
        """Assign the project and mark the contractor's request accepted.

        Both writes share one transaction, so a failure leaves the project
        unassigned. Returns False when another contractor already holds the
        project or the contractor has no invitation.
        """
        assign = (
            update(Project)
            .where(
                and_(
                    Project.id == project_id,
                    Project.assigned_contractor_id.is_(None),
                )
            )
            .values(assigned_contractor_id=contractor_id)
        )
        accept = (
            update(MatchRequest)
            .where(
                and_(
                    MatchRequest.project_id == project_id,
                    MatchRequest.contractor_id == contractor_id,
                )
            )
            .values(status=MatchRequestStatus.ACCEPTED, responded_at=datetime.now(timezone.utc))
        )
        try:
            assigned = await self.db.execute(assign)
            if assigned.rowcount != 1:
                await self.db.rollback()
                return False
            accepted = await self.db.execute(accept)
            if accepted.rowcount != 1:
                await self.db.rollback()
                return False
            await self.db.commit()
        except SQLAlchemyError as e:
            await self._rollback()
            raise translate_error(e, f"Failed to accept project {project_id}") from e
        return True
