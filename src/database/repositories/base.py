"""
Team-scoped CRUD shared by every discussion collection.

Reads are scoped by team. Writes through the HTTP layer are scoped by
record id, team and owner so a member can only modify their own rows.
Pipeline writes go through the ``*_system`` helpers and are attributed
to the system user.
"""

import logging
from typing import Optional, List, Dict, Any, Type

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from ..connection import get_database
from ..models import Base
from ..exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
)
from ...utils.constants import SYSTEM_USER_ID

logger = logging.getLogger(__name__)

# Columns callers may never overwrite through update()
PROTECTED_FIELDS = {"id", "team_id", "owner", "created_at", "created_by"}


class TeamScopedRepository:
    """Generic repository for a team-owned collection."""

    model: Type[Base] = None
    entity_name: str = "Record"

    def __init__(self):
        self.db = get_database()

    def _columns(self) -> Dict[str, str]:
        """Map public field names to mapped attribute names."""
        return {prop.columns[0].name: prop.key for prop in self.model.__mapper__.column_attrs}

    def _to_attributes(self, data: Dict[str, Any], exclude: set = frozenset()) -> Dict[str, Any]:
        columns = self._columns()
        values = {}
        for key, value in data.items():
            if key in exclude:
                continue
            attr = columns.get(key)
            if attr is None:
                logger.debug(f"Ignoring unknown {self.entity_name} field: {key}")
                continue
            values[attr] = value
        return values

    # ==================== READS ====================

    async def get_all(self, team_id: str) -> List[Base]:
        """All rows of the team, newest first."""
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.model.team_id == team_id)
                .order_by(self.model.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_by_ids(self, team_id: str, ids: List[str]) -> List[Base]:
        """Rows of the team whose id is in ``ids``."""
        if not ids:
            return []
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model)
                .where(self.model.team_id == team_id, self.model.id.in_(ids))
                .order_by(self.model.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_by_id(self, record_id: str) -> Optional[Base]:
        """Unscoped lookup used by the pipeline."""
        async with self.db.session() as session:
            result = await session.execute(
                select(self.model).where(self.model.id == record_id)
            )
            return result.scalar_one_or_none()

    # ==================== WRITES ====================

    async def create(self, data: Dict[str, Any]) -> Base:
        """Insert a row. ``team_id`` and ``owner`` are required."""
        if not data.get("team_id") or not data.get("owner"):
            raise DatabaseOperationError(f"Cannot create {self.entity_name}: team_id and owner are required")

        values = self._to_attributes(data)
        values.setdefault("created_by", data["owner"])
        values.setdefault("updated_by", data["owner"])

        async with self.db.session() as session:
            try:
                record = self.model(**values)
                session.add(record)
                await session.flush()
                await session.refresh(record)
                logger.info(f"Created {self.entity_name} {record.id} for team {record.team_id}")
                return record

            except IntegrityError as e:
                logger.error(f"Constraint violation creating {self.entity_name}: {e}")
                raise DatabaseConstraintError(
                    f"Cannot create {self.entity_name}: duplicate or constraint violation"
                )

            except Exception as e:
                logger.error(f"{self.entity_name} creation failed: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to create {self.entity_name}: {e}")

    async def create_system(self, data: Dict[str, Any]) -> Base:
        """Insert a row owned by the system user."""
        return await self.create({**data, "owner": SYSTEM_USER_ID,
                                  "created_by": SYSTEM_USER_ID, "updated_by": SYSTEM_USER_ID})

    async def update(
        self,
        record_id: str,
        team_id: str,
        owner_id: str,
        updates: Dict[str, Any],
    ) -> Base:
        """Update a row the caller owns within the team."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(self.model).where(
                        self.model.id == record_id,
                        self.model.team_id == team_id,
                        self.model.owner == owner_id,
                    )
                )
                record = result.scalar_one_or_none()
                if not record:
                    raise EntityNotFoundError(f"{self.entity_name} not found or unauthorized")

                for attr, value in self._to_attributes(updates, exclude=PROTECTED_FIELDS).items():
                    setattr(record, attr, value)
                record.updated_by = owner_id

                await session.flush()
                await session.refresh(record)
                logger.info(f"Updated {self.entity_name} {record_id}")
                return record

            except EntityNotFoundError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation updating {self.entity_name} {record_id}: {e}")
                raise DatabaseConstraintError(f"Cannot update {self.entity_name}: constraint violation")

            except Exception as e:
                logger.error(f"Failed to update {self.entity_name} {record_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update {self.entity_name}: {e}")

    async def update_system(self, record_id: str, updates: Dict[str, Any]) -> Base:
        """Update a row on behalf of the pipeline, regardless of owner."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(self.model).where(self.model.id == record_id)
                )
                record = result.scalar_one_or_none()
                if not record:
                    raise EntityNotFoundError(f"{self.entity_name} {record_id} not found")

                for attr, value in self._to_attributes(updates, exclude=PROTECTED_FIELDS).items():
                    setattr(record, attr, value)
                record.updated_by = SYSTEM_USER_ID

                await session.flush()
                await session.refresh(record)
                return record

            except EntityNotFoundError:
                raise

            except Exception as e:
                logger.error(f"Failed to update {self.entity_name} {record_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to update {self.entity_name}: {e}")

    async def delete(self, record_id: str, team_id: str, owner_id: str) -> Dict[str, bool]:
        """Delete a row the caller owns within the team."""
        async with self.db.session() as session:
            try:
                result = await session.execute(
                    select(self.model).where(
                        self.model.id == record_id,
                        self.model.team_id == team_id,
                        self.model.owner == owner_id,
                    )
                )
                record = result.scalar_one_or_none()
                if not record:
                    raise EntityNotFoundError(f"{self.entity_name} not found or unauthorized")

                await session.delete(record)
                logger.info(f"Deleted {self.entity_name} {record_id}")
                return {"success": True}

            except EntityNotFoundError:
                raise

            except IntegrityError as e:
                logger.error(f"Constraint violation deleting {self.entity_name} {record_id}: {e}")
                raise DatabaseConstraintError(f"Cannot delete {self.entity_name}: still referenced")

            except Exception as e:
                logger.error(f"Failed to delete {self.entity_name} {record_id}: {e}", exc_info=True)
                raise DatabaseOperationError(f"Failed to delete {self.entity_name}: {e}")
