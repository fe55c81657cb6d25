"""
Team-scoped CRUD routes for the discussion collections.

    GET    /api/teams/{team_id}/discussion-collections-{name}?ids=a,b
    POST   /api/teams/{team_id}/discussion-collections-{name}
    PATCH  /api/teams/{team_id}/discussion-collections-{name}/{record_id}
    DELETE /api/teams/{team_id}/discussion-collections-{name}/{record_id}

Writes are attributed to the calling user. Updates and deletes only
match rows the caller owns.
"""

import enum
import logging
from typing import Optional, Dict, Any, Callable, Type

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError

from ..database.exceptions import (
    DatabaseConstraintError,
    DatabaseOperationError,
    EntityNotFoundError,
)
from ..database.repositories import (
    TeamScopedRepository,
    get_discussion_repository,
    get_sourceconfig_repository,
    get_syncjob_repository,
    get_task_repository,
)
from ..database.repositories.sourceconfigs import SECRET_FIELDS
from ..models.api_validation import (
    DiscussionCreate,
    DiscussionUpdate,
    SourceConfigCreate,
    SourceConfigUpdate,
    SyncJobCreate,
    SyncJobUpdate,
    TaskCreate,
    TaskUpdate,
    UserMappingImportRequest,
)
from ..services.user_mapping import bulk_import_mappings
from .auth import TeamContext, require_team_member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/teams/{team_id}", tags=["collections"])


def parse_ids(ids: Optional[str]) -> Optional[list]:
    """``a, b,,c`` -> ["a", "b", "c"]; None when no filter was given."""
    if ids is None:
        return None
    return [part.strip() for part in ids.split(",") if part.strip()]


def _plain(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, enum.Enum) else value for key, value in data.items()}


def serialize(record, collection: str) -> Dict[str, Any]:
    data = record.to_dict()
    if collection == "sourceconfigs":
        # Secrets never leave the service; report whether they are set
        for field in SECRET_FIELDS:
            data[f"has_{field}"] = bool(data.pop(field, None))
    return data


def _validate(model: Type[BaseModel], payload: Dict[str, Any]) -> BaseModel:
    try:
        return model(**(payload or {}))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))


async def _ensure_discussion(ctx: TeamContext, discussion_id: str) -> None:
    found = await get_discussion_repository().get_by_ids(ctx.team_id, [discussion_id])
    if not found:
        raise HTTPException(status_code=404, detail="Discussion not found")


def _db_error(e: Exception, action: str, collection: str) -> HTTPException:
    if isinstance(e, EntityNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, DatabaseConstraintError):
        return HTTPException(status_code=400, detail=str(e))
    logger.error(f"Failed to {action} {collection}: {e}", exc_info=not isinstance(e, DatabaseOperationError))
    return HTTPException(status_code=500, detail=f"Failed to {action} {collection}")


def register_collection(
    name: str,
    get_repository: Callable[[], TeamScopedRepository],
    create_model: Type[BaseModel],
    update_model: Type[BaseModel],
    requires_discussion: bool = False,
) -> None:
    path = f"/discussion-collections-{name}"

    @router.get(path, name=f"list_{name}")
    async def list_records(
        ids: Optional[str] = Query(None, description="Comma separated record ids"),
        ctx: TeamContext = Depends(require_team_member),
    ):
        repo = get_repository()
        wanted = parse_ids(ids)
        try:
            if wanted is not None:
                records = await repo.get_by_ids(ctx.team_id, wanted)
            else:
                records = await repo.get_all(ctx.team_id)
        except Exception as e:
            raise _db_error(e, "list", name)
        return [serialize(record, name) for record in records]

    @router.post(path, name=f"create_{name}")
    async def create_record(
        payload: Dict[str, Any] = Body(...),
        ctx: TeamContext = Depends(require_team_member),
    ):
        body = _validate(create_model, payload)
        data = _plain(body.model_dump(exclude_none=True))
        if requires_discussion:
            await _ensure_discussion(ctx, data["discussion_id"])
        try:
            record = await get_repository().create({
                **data,
                "team_id": ctx.team_id,
                "owner": ctx.user_id,
                "created_by": ctx.user_id,
                "updated_by": ctx.user_id,
            })
        except Exception as e:
            raise _db_error(e, "create", name)
        return serialize(record, name)

    @router.patch(path + "/{record_id}", name=f"update_{name}")
    async def update_record(
        record_id: str,
        payload: Dict[str, Any] = Body(...),
        ctx: TeamContext = Depends(require_team_member),
    ):
        body = _validate(update_model, payload)
        updates = _plain(body.model_dump(exclude_unset=True))
        if not updates:
            raise HTTPException(status_code=400, detail="No fields to update")
        try:
            record = await get_repository().update(record_id, ctx.team_id, ctx.user_id, updates)
        except Exception as e:
            raise _db_error(e, "update", name)
        return serialize(record, name)

    @router.delete(path + "/{record_id}", name=f"delete_{name}")
    async def delete_record(
        record_id: str,
        ctx: TeamContext = Depends(require_team_member),
    ):
        try:
            return await get_repository().delete(record_id, ctx.team_id, ctx.user_id)
        except Exception as e:
            raise _db_error(e, "delete", name)


register_collection("discussions", get_discussion_repository, DiscussionCreate, DiscussionUpdate)
register_collection("sourceconfigs", get_sourceconfig_repository, SourceConfigCreate, SourceConfigUpdate)
register_collection("syncjobs", get_syncjob_repository, SyncJobCreate, SyncJobUpdate, requires_discussion=True)
register_collection("tasks", get_task_repository, TaskCreate, TaskUpdate, requires_discussion=True)


@router.post("/user-mappings/import")
async def import_user_mappings(
    request: UserMappingImportRequest,
    ctx: TeamContext = Depends(require_team_member),
):
    """Bulk create or update source user -> Notion user mappings."""
    result = await bulk_import_mappings(request.mappings, ctx.team_id, owner_id=ctx.user_id)
    return {"success": result["failed"] == 0, **result}
