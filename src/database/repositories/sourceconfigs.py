"""
Repository for source configurations.

Tokens (api_token, notion_token, ai_api_key) are encrypted at rest and
decrypted on the way out through ``to_source_config``.
"""

import logging
from typing import Optional, List, Dict, Any

from sqlalchemy import select

from .base import TeamScopedRepository
from ..models import SourceConfigDB
from ...models.discussion import SourceConfig
from ...utils.encryption import get_secret_encryption

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("api_token", "notion_token", "ai_api_key")


class SourceConfigRepository(TeamScopedRepository):
    """Repository for source configuration operations."""

    model = SourceConfigDB
    entity_name = "Sourceconfig"

    def _encrypt_secrets(self, data: Dict[str, Any]) -> Dict[str, Any]:
        encryption = get_secret_encryption()
        data = dict(data)
        for field in SECRET_FIELDS:
            if data.get(field):
                data[field] = encryption.encrypt(data[field])
        return data

    async def create(self, data: Dict[str, Any]) -> SourceConfigDB:
        return await super().create(self._encrypt_secrets(data))

    async def update(self, record_id, team_id, owner_id, updates):
        return await super().update(record_id, team_id, owner_id, self._encrypt_secrets(updates))

    async def update_system(self, record_id, updates):
        return await super().update_system(record_id, self._encrypt_secrets(updates))

    async def get_active_config(self, team_id: str, source_type: str) -> Optional[SourceConfigDB]:
        """The newest active config for a team and source type."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SourceConfigDB)
                .where(
                    SourceConfigDB.team_id == team_id,
                    SourceConfigDB.source_type == source_type,
                    SourceConfigDB.active.is_(True),
                )
                .order_by(SourceConfigDB.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def find_by_metadata(
        self, source_type: str, key: str, value: str, active_only: bool = True
    ) -> Optional[SourceConfigDB]:
        """Find a config whose source_metadata[key] equals value.

        JSON filtering differs between backends, so matching happens in Python
        over the configs of the given source type.
        """
        async with self.db.session() as session:
            query = select(SourceConfigDB).where(SourceConfigDB.source_type == source_type)
            if active_only:
                query = query.where(SourceConfigDB.active.is_(True))
            result = await session.execute(query.order_by(SourceConfigDB.created_at.desc()))
            for config in result.scalars().all():
                if (config.source_metadata or {}).get(key) == value:
                    return config
            return None

    async def get_by_email_slug(self, email_slug: str, source_type: str = "figma") -> Optional[SourceConfigDB]:
        """Active config whose inbound address local part is ``email_slug``."""
        async with self.db.session() as session:
            result = await session.execute(
                select(SourceConfigDB)
                .where(
                    SourceConfigDB.source_type == source_type,
                    SourceConfigDB.email_slug == email_slug,
                    SourceConfigDB.active.is_(True),
                )
                .order_by(SourceConfigDB.created_at.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_active(self, source_type: Optional[str] = None) -> List[SourceConfigDB]:
        async with self.db.session() as session:
            query = select(SourceConfigDB).where(SourceConfigDB.active.is_(True))
            if source_type:
                query = query.where(SourceConfigDB.source_type == source_type)
            result = await session.execute(query)
            return list(result.scalars().all())


def to_source_config(record: SourceConfigDB) -> SourceConfig:
    """Build the runtime view of a config row with secrets decrypted."""
    encryption = get_secret_encryption()
    return SourceConfig(
        id=record.id,
        team_id=record.team_id,
        source_type=record.source_type,
        name=record.name,
        api_token=encryption.decrypt(record.api_token) if record.api_token else "",
        notion_token=encryption.decrypt(record.notion_token) if record.notion_token else "",
        notion_database_id=record.notion_database_id or "",
        ai_api_key=encryption.decrypt(record.ai_api_key) if record.ai_api_key else None,
        ai_enabled=bool(record.ai_enabled),
        ai_summary_prompt=record.ai_summary_prompt,
        ai_task_prompt=record.ai_task_prompt,
        notion_field_mapping=record.notion_field_mapping or {},
        auto_sync=bool(record.auto_sync),
        post_confirmation=bool(record.post_confirmation),
        webhook_url=record.webhook_url,
        active=bool(record.active),
        source_metadata=record.source_metadata or {},
    )


_sourceconfig_repository: Optional[SourceConfigRepository] = None


def get_sourceconfig_repository() -> SourceConfigRepository:
    """Get the source config repository singleton."""
    global _sourceconfig_repository
    if _sourceconfig_repository is None:
        _sourceconfig_repository = SourceConfigRepository()
    return _sourceconfig_repository
