"""
Inbound webhooks.

- POST /api/webhooks/slack        Slack Events API
- POST /api/webhooks/mailgun      Figma notification emails routed by Mailgun
- POST /api/webhooks/resend       Figma notification emails received by Resend
- POST /api/webhooks/notion-input Notion comment.created events

Slack and Notion events are acknowledged immediately and processed in the
background. Emails are processed inline so the sender can retry: 503 for
retryable failures, 422 for the rest.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Request
from fastapi.responses import JSONResponse

from config import settings
from ..adapters import (
    AdapterError,
    DEFAULT_TRIGGER_KEYWORD,
    check_for_trigger,
    fetch_comment,
    get_adapter,
    is_bot_event,
)
from ..database.repositories import get_sourceconfig_repository, to_source_config
from ..integrations.resend import ResendError, fetch_resend_email, transform_to_mailgun_format
from ..models.discussion import ParsedDiscussion
from ..monitoring import METRICS, metrics_collector, webhooks_received_total
from ..services.processor import ProcessingError, ProcessingOptions, process_discussion
from ..services.rate_limiter import RATE_LIMITS, check_rate_limit
from ..utils.email_classifier import (
    COMMENT,
    OTHER,
    classify_email,
    email_from_mailgun_payload,
    get_email_type_description,
    should_forward_email,
)
from ..utils.webhook_security import (
    validate_iso_timestamp,
    verify_mailgun_signature,
    verify_notion_signature,
    verify_slack_signature,
    verify_svix_signature,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _load_json(raw: bytes) -> Dict[str, Any]:
    try:
        data = json.loads(raw or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    if not isinstance(data, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON body")
    return data


async def run_pipeline(parsed: ParsedDiscussion, options: Optional[ProcessingOptions] = None) -> None:
    """Background processing; failures are recorded on the sync job."""
    try:
        result = await process_discussion(parsed, options)
        logger.info(
            f"Background processing done for {parsed.source_type} thread {parsed.source_thread_id}: "
            f"discussion {result.discussion_id}, {len(result.notion_tasks)} task(s)"
        )
    except ProcessingError as e:
        logger.error(
            f"Background processing failed at {e.stage} for {parsed.source_thread_id}: {e.message}"
        )
    except Exception as e:
        logger.error(f"Unexpected background processing error for {parsed.source_thread_id}: {e}", exc_info=True)


def _processing_response(result) -> Dict[str, Any]:
    return {
        "success": True,
        "data": {
            "discussion_id": result.discussion_id,
            "notion_tasks": [{"id": task.id, "url": task.url} for task in result.notion_tasks],
            "is_multi_task": result.is_multi_task,
            "processing_time": result.processing_time,
        },
    }


async def _process_email(payload: Dict[str, Any], source: str, timer) -> Dict[str, Any]:
    """Classify, parse and process a Mailgun-shaped Figma email."""
    classification = classify_email(email_from_mailgun_payload(payload))
    logger.info(
        f"[{source}] Email classified as {classification.message_type} "
        f"({classification.confidence:.2f}): {classification.reason}"
    )

    if classification.message_type not in (COMMENT, OTHER):
        webhooks_received_total.labels(source=source, outcome="ignored").inc()
        timer.end(success=True, ignored=classification.message_type)
        if should_forward_email(classification.message_type):
            logger.warning(
                f"[{source}] {get_email_type_description(classification.message_type)} email "
                f"for {payload.get('recipient')} needs manual action"
            )
        return {
            "success": True,
            "message": f"Email type '{classification.message_type}' ignored",
            "email_type": classification.message_type,
            "requires_action": should_forward_email(classification.message_type),
        }

    try:
        parsed = await get_adapter("figma").parse_incoming(payload)
    except AdapterError as e:
        webhooks_received_total.labels(source=source, outcome="rejected").inc()
        timer.end(success=False)
        raise HTTPException(status_code=422, detail=f"Failed to parse email: {e}")

    try:
        result = await process_discussion(parsed)
    except ProcessingError as e:
        webhooks_received_total.labels(source=source, outcome="failed").inc()
        timer.end(success=False, stage=e.stage)
        raise HTTPException(
            status_code=503 if e.retryable else 422,
            detail={"error": e.message, "stage": e.stage, "retryable": e.retryable},
        )

    webhooks_received_total.labels(source=source, outcome="accepted").inc()
    timer.end(success=True)
    return _processing_response(result)


# ============================================================================
# Slack
# ============================================================================

@router.post("/slack")
async def slack_webhook(request: Request, background_tasks: BackgroundTasks):
    """Slack Events API endpoint."""
    timer = metrics_collector.start(METRICS.WEBHOOK_SLACK)
    raw_body = await request.body()

    if settings.slack_signing_secret:
        valid = verify_slack_signature(
            settings.slack_signing_secret,
            raw_body,
            request.headers.get("X-Slack-Request-Timestamp"),
            request.headers.get("X-Slack-Signature"),
        )
        if not valid:
            webhooks_received_total.labels(source="slack", outcome="rejected").inc()
            timer.end(success=False)
            raise HTTPException(status_code=401, detail="Invalid Slack signature")
    else:
        logger.warning("SLACK_SIGNING_SECRET not configured - skipping signature verification")

    payload = _load_json(raw_body)

    if payload.get("type") == "url_verification":
        timer.end(success=True)
        return {"challenge": payload.get("challenge")}

    # The first delivery is already being processed
    retry_num = request.headers.get("X-Slack-Retry-Num")
    if retry_num:
        logger.info(
            f"Ignoring Slack retry #{retry_num} ({request.headers.get('X-Slack-Retry-Reason', 'unknown')})"
        )
        webhooks_received_total.labels(source="slack", outcome="ignored").inc()
        timer.end(success=True, retry=True)
        return {"ok": True, "message": "Retry ignored"}

    # Our own confirmation replies come back as message events
    if is_bot_event(payload):
        webhooks_received_total.labels(source="slack", outcome="ignored").inc()
        timer.end(success=True, bot=True)
        return {"ok": True, "message": "Bot event ignored"}

    try:
        parsed = await get_adapter("slack").parse_incoming(payload)
    except AdapterError as e:
        webhooks_received_total.labels(source="slack", outcome="rejected").inc()
        timer.end(success=False)
        raise HTTPException(status_code=422, detail=f"Failed to parse Slack event: {e}")

    background_tasks.add_task(run_pipeline, parsed)
    webhooks_received_total.labels(source="slack", outcome="accepted").inc()
    timer.end(success=True)

    return {
        "ok": True,
        "message": "Event queued for processing",
        "thread_id": parsed.source_thread_id,
        "timestamp": _now(),
    }


# ============================================================================
# Email (Figma)
# ============================================================================

@router.post("/mailgun")
async def mailgun_webhook(request: Request):
    """Mailgun inbound route for Figma comment emails (multipart/urlencoded form)."""
    timer = metrics_collector.start(METRICS.WEBHOOK_MAILGUN)
    form = await request.form()
    payload = {key: value for key, value in form.items() if isinstance(value, str)}

    if settings.mailgun_signing_key:
        valid = verify_mailgun_signature(
            settings.mailgun_signing_key,
            payload.get("timestamp"),
            payload.get("token"),
            payload.get("signature"),
        )
        if not valid:
            webhooks_received_total.labels(source="mailgun", outcome="rejected").inc()
            timer.end(success=False)
            raise HTTPException(status_code=401, detail="Invalid Mailgun signature")
    else:
        logger.warning("MAILGUN_SIGNING_KEY not configured - skipping signature verification")

    logger.info(f"[mailgun] Email from {payload.get('from')} to {payload.get('recipient')}")
    return await _process_email(payload, "mailgun", timer)


@router.post("/resend")
async def resend_webhook(request: Request):
    """Resend email.received webhook. The body is fetched from the Resend API."""
    timer = metrics_collector.start(METRICS.WEBHOOK_RESEND)
    raw_body = await request.body()
    payload = _load_json(raw_body)

    errors = []
    if not payload.get("type"):
        errors.append("Missing required field: type")
    elif payload["type"] != "email.received":
        errors.append(f"Invalid event type: {payload['type']}. Expected: email.received")
    data = payload.get("data")
    if not isinstance(data, dict):
        errors.append("Missing or invalid data object")
    elif not data.get("id"):
        errors.append("Missing required field: data.id")
    if errors:
        timer.end(success=False)
        raise HTTPException(status_code=400, detail={"message": "Invalid Resend webhook payload", "errors": errors})

    if settings.resend_webhook_secret:
        valid = verify_svix_signature(
            settings.resend_webhook_secret,
            raw_body,
            request.headers.get("svix-id"),
            request.headers.get("svix-timestamp"),
            request.headers.get("svix-signature"),
        )
        if not valid:
            webhooks_received_total.labels(source="resend", outcome="rejected").inc()
            timer.end(success=False)
            raise HTTPException(status_code=401, detail="Invalid webhook signature")
    else:
        logger.warning("RESEND_WEBHOOK_SECRET not configured - skipping signature verification")

    if not settings.resend_api_key:
        timer.end(success=False)
        raise HTTPException(status_code=500, detail="RESEND_API_KEY not configured")

    try:
        email = await fetch_resend_email(data["id"], settings.resend_api_key)
    except ResendError as e:
        webhooks_received_total.labels(source="resend", outcome="failed").inc()
        timer.end(success=False)
        raise HTTPException(status_code=422, detail=f"Failed to fetch email from Resend API: {e.message}")

    return await _process_email(transform_to_mailgun_format(email), "resend", timer)


# ============================================================================
# Notion
# ============================================================================

def _notion_reply(success: bool, message: str, status_code: int = 200, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": success, "message": message, "timestamp": _now(), **extra},
    )


@router.post("/notion-input")
async def notion_webhook(request: Request, background_tasks: BackgroundTasks):
    """
    Notion integration webhook.

    Notion retries anything that is not a 2xx, so problems are reported in
    the body with ``success: false``. The only exception is the per
    workspace rate limit (429).
    """
    timer = metrics_collector.start(METRICS.WEBHOOK_NOTION)
    raw_body = await request.body()

    if not raw_body:
        timer.end(success=False)
        return _notion_reply(False, "Empty request body")

    try:
        body = json.loads(raw_body)
    except ValueError:
        timer.end(success=False)
        return _notion_reply(False, "Invalid JSON body")
    if not isinstance(body, dict):
        timer.end(success=False)
        return _notion_reply(False, "Invalid JSON body")

    if body.get("type") == "url_verification" or ("verification_token" in body and not body.get("type")):
        timer.end(success=True)
        if not body.get("verification_token"):
            return _notion_reply(False, "Missing verification_token")
        logger.info("Notion webhook verification token received")
        return {"verification_token": body["verification_token"]}

    if settings.notion_webhook_secret:
        signature = request.headers.get("X-Notion-Signature")
        if not signature:
            timer.end(success=False)
            return _notion_reply(False, "Missing signature header")
        if not verify_notion_signature(raw_body, signature, settings.notion_webhook_secret):
            webhooks_received_total.labels(source="notion", outcome="rejected").inc()
            timer.end(success=False)
            return _notion_reply(False, "Invalid signature")
    else:
        logger.warning("NOTION_WEBHOOK_SECRET not configured - skipping signature verification")

    if not validate_iso_timestamp(body.get("timestamp")):
        timer.end(success=False)
        return _notion_reply(False, "Request timestamp outside tolerance window")

    workspace_id = body.get("workspace_id") or "unknown"
    limit = check_rate_limit(f"webhook:notion:{workspace_id}", RATE_LIMITS["NOTION_WEBHOOK"])
    if not limit.allowed:
        timer.end(success=False)
        return _notion_reply(False, "Rate limit exceeded", status_code=429, retry_after=limit.retry_after)

    if body.get("type") != "comment.created":
        webhooks_received_total.labels(source="notion", outcome="ignored").inc()
        timer.end(success=True)
        return _notion_reply(
            True, f"Event type '{body.get('type')}' ignored (only 'comment.created' is processed)"
        )

    data = body.get("data") or {}
    parent = data.get("parent") or {}
    if not data.get("id") or not data.get("discussion_id"):
        timer.end(success=False)
        return _notion_reply(False, "Invalid payload structure")
    if not (parent.get("page_id") or parent.get("block_id")):
        timer.end(success=False)
        return _notion_reply(False, "Missing parent ID")

    record = await get_sourceconfig_repository().find_by_metadata("notion", "notionWorkspaceId", workspace_id)
    if not record:
        logger.warning(f"No active Notion config for workspace {workspace_id}")
        webhooks_received_total.labels(source="notion", outcome="ignored").inc()
        timer.end(success=False)
        return _notion_reply(False, f"No active config for workspace: {workspace_id}")

    config = to_source_config(record)
    token = config.api_token or config.notion_token
    if not token:
        timer.end(success=False)
        return _notion_reply(False, "No API token configured")

    comment = data if data.get("rich_text") else await fetch_comment(data["id"], token)
    if not comment:
        timer.end(success=False)
        return _notion_reply(False, "Failed to fetch comment content")

    keyword = config.source_metadata.get("triggerKeyword") or DEFAULT_TRIGGER_KEYWORD
    if not check_for_trigger(comment.get("rich_text") or [], keyword):
        webhooks_received_total.labels(source="notion", outcome="ignored").inc()
        timer.end(success=True)
        return _notion_reply(True, f"Comment does not contain trigger keyword '{keyword}'")

    try:
        fetched = {key: comment[key] for key in ("rich_text", "created_by", "created_time") if comment.get(key)}
        parsed = await get_adapter("notion").parse_incoming(
            {**body, "data": {**data, "rich_text": [], **fetched}}, config
        )
    except AdapterError as e:
        webhooks_received_total.labels(source="notion", outcome="rejected").inc()
        timer.end(success=False)
        return _notion_reply(False, "Failed to parse event", error=e.message)

    background_tasks.add_task(run_pipeline, parsed, ProcessingOptions(config=config))
    webhooks_received_total.labels(source="notion", outcome="accepted").inc()
    timer.end(success=True)

    return _notion_reply(True, "Discussion queued for background processing", thread_id=parsed.source_thread_id)
