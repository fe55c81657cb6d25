"""
Mapping of source users (Slack ids, Figma handles, Notion ids) to Notion users.

Used to turn participants into Notion @mentions and to fill "people"
properties such as the assignee.
"""

import re
import logging
from datetime import datetime
from typing import Dict, Any, List, Iterable, Optional

from pydantic import ValidationError

from ..database.repositories.user_mappings import get_user_mapping_repository
from ..models.api_validation import UserMappingInput
from ..models.discussion import is_known_source_type
from ..models.enums import MappingType
from ..utils.constants import SYSTEM_USER_ID

logger = logging.getLogger(__name__)

MAX_IMPORT_MAPPINGS = 1000

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    return {_CAMEL_BOUNDARY.sub("_", key).lower(): value for key, value in data.items()}


async def resolve_user_mentions(team_id: str, source_type: str,
                                handles: Iterable[str]) -> Dict[str, str]:
    """Source user id -> Notion user id for the handles that have an active mapping."""
    wanted = {h for h in handles if h}
    if not wanted:
        return {}

    repo = get_user_mapping_repository()
    mappings = await repo.get_active_for_source(team_id, source_type)

    resolved = {}
    for mapping in mappings:
        for key in (mapping.source_user_id, mapping.source_user_email, mapping.source_user_name):
            if key and key in wanted and key not in resolved:
                resolved[key] = mapping.notion_user_id

    logger.debug(f"Resolved {len(resolved)}/{len(wanted)} {source_type} users for team {team_id}")
    return resolved


async def bulk_import_mappings(mappings: List[Dict[str, Any]], team_id: str,
                               owner_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Create or update mappings in bulk.

    Invalid entries are reported and skipped. Returns
    {"successful": int, "failed": int, "errors": [str]}.
    """
    result = {"successful": 0, "failed": 0, "errors": []}

    if not mappings:
        return result

    if len(mappings) > MAX_IMPORT_MAPPINGS:
        result["failed"] = len(mappings)
        result["errors"].append(
            f"Too many mappings: {len(mappings)} (maximum is {MAX_IMPORT_MAPPINGS})"
        )
        return result

    owner = owner_id or SYSTEM_USER_ID
    repo = get_user_mapping_repository()

    for index, raw in enumerate(mappings):
        label = f"Mapping {index + 1}"
        try:
            mapping = UserMappingInput(**_snake_case_keys(raw or {}))
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors() if err.get("loc"))
            result["failed"] += 1
            result["errors"].append(f"{label}: missing or invalid fields: {fields}")
            continue

        if not is_known_source_type(mapping.source_type):
            result["failed"] += 1
            result["errors"].append(f"{label}: Invalid sourceType '{mapping.source_type}'")
            continue

        values = mapping.model_dump(exclude_none=True)
        values.update({
            "mapping_type": MappingType.IMPORTED.value,
            "active": True,
            "last_synced_at": datetime.utcnow(),
        })

        try:
            existing = await repo.find_mapping(team_id, mapping.source_type, mapping.source_user_id)
            if existing:
                await repo.update_system(existing.id, values)
            else:
                await repo.create({**values, "team_id": team_id, "owner": owner})
            result["successful"] += 1
        except Exception as e:
            logger.error(f"Failed to import user mapping {mapping.source_user_id}: {e}")
            result["failed"] += 1
            result["errors"].append(f"{label}: {e}")

    logger.info(
        f"Imported user mappings for team {team_id}: "
        f"{result['successful']} ok, {result['failed']} failed"
    )
    return result
