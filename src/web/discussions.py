"""
Pipeline and configuration endpoints.

- POST /api/discussions/process        run, reprocess or retry a discussion
- POST /api/configs/test-connection    validate a source config and test both APIs
"""

import time
import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException

from ..adapters import get_adapter
from ..database.repositories import get_discussion_repository, get_sourceconfig_repository, to_source_config
from ..integrations.notion import test_notion_connection
from ..models.api_validation import ConnectionTestRequest, ProcessDiscussionRequest
from ..models.discussion import SourceConfig
from ..models.enums import ProcessingStage
from ..services.processor import (
    ProcessingError,
    ProcessingOptions,
    process_discussion,
    process_discussion_by_id,
    retry_failed_discussion,
)
from .auth import get_current_user, resolve_team_member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["pipeline"])


def _processing_http_error(e: ProcessingError) -> HTTPException:
    if e.stage == ProcessingStage.VALIDATION.value:
        status_code = 400
    else:
        status_code = 503 if e.retryable else 422
    return HTTPException(status_code=status_code, detail=e.to_dict())


@router.post("/discussions/process")
async def process_discussion_endpoint(
    request: ProcessDiscussionRequest,
    x_user_id: Optional[str] = Header(None),
):
    """
    Run the pipeline.

    - ``direct``: process ``parsed`` (optionally with a ``thread`` override)
    - ``reprocess``: run a stored discussion again
    - ``retry``: reprocess a failed discussion with backoff
    """
    user_id = await get_current_user(x_user_id)
    options = ProcessingOptions(
        thread=request.thread,
        skip_ai=request.skip_ai,
        skip_notion=request.skip_notion,
    )

    try:
        if request.type == "direct":
            if not request.parsed:
                raise HTTPException(status_code=400, detail="Direct processing requires a 'parsed' discussion")
            await resolve_team_member(request.parsed.team_id, user_id)
            result = await process_discussion(request.parsed, options)

        else:
            if not request.discussion_id:
                raise HTTPException(
                    status_code=400, detail=f"'{request.type}' requires a 'discussion_id'"
                )
            discussion = await get_discussion_repository().get_by_id(request.discussion_id)
            if not discussion:
                raise HTTPException(status_code=404, detail="Discussion not found")
            await resolve_team_member(discussion.team_id, user_id)

            if request.type == "reprocess":
                result = await process_discussion_by_id(request.discussion_id, options)
            else:
                result = await retry_failed_discussion(request.discussion_id, options)

    except HTTPException:
        raise
    except ProcessingError as e:
        logger.error(f"Processing request ({request.type}) failed at {e.stage}: {e.message}")
        raise _processing_http_error(e)
    except Exception as e:
        logger.error(f"Processing request ({request.type}) failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return {"success": True, **result.model_dump(mode="json")}


@router.post("/configs/test-connection")
async def test_connection_endpoint(
    request: ConnectionTestRequest,
    x_user_id: Optional[str] = Header(None),
):
    """Validate a stored or draft config and test the source and Notion credentials."""
    user_id = await get_current_user(x_user_id)

    if request.config_id:
        record = await get_sourceconfig_repository().get_by_id(request.config_id)
        if not record:
            raise HTTPException(status_code=404, detail="Config not found")
        await resolve_team_member(record.team_id, user_id)
        config = to_source_config(record)
    elif request.config:
        draft = request.config.model_dump(exclude_none=True, mode="json")
        config = SourceConfig(team_id="", **{
            key: value for key, value in draft.items() if key in SourceConfig.model_fields
        })
    else:
        raise HTTPException(status_code=400, detail="Either 'config_id' or 'config' is required")

    start = time.perf_counter()

    try:
        adapter = get_adapter(config.source_type)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    validation = await adapter.validate_config(config)

    source = {"connected": False}
    try:
        source["connected"] = bool(await adapter.test_connection(config))
        if not source["connected"]:
            source["error"] = f"Could not connect to {config.source_type}"
    except Exception as e:
        source["error"] = str(e)

    if config.notion_token and config.notion_database_id:
        notion = await test_notion_connection(config.notion_database_id, config.notion_token)
    else:
        notion = {"connected": False, "error": "Notion token and database ID are required"}

    test_time = (time.perf_counter() - start) * 1000
    valid = validation.is_valid and source["connected"] and notion["connected"]

    logger.info(
        f"Connection test for {config.source_type} config {config.id or '(draft)'}: "
        f"source={source['connected']} notion={notion['connected']} valid={valid}"
    )

    return {
        "success": valid,
        "source": source,
        "notion": notion,
        "valid": valid,
        "errors": validation.errors,
        "warnings": validation.warnings,
        "test_time": test_time,
    }
