"""Outbound integrations: Notion task creation and Resend email retrieval."""

from .notion import (
    NotionAPIError,
    create_notion_task,
    create_notion_tasks,
    test_notion_connection,
    get_database_schema,
    list_users,
    format_notion_property,
    build_task_properties,
    build_task_content,
)
from .resend import ResendError, fetch_resend_email, transform_to_mailgun_format

__all__ = [
    "NotionAPIError",
    "create_notion_task",
    "create_notion_tasks",
    "test_notion_connection",
    "get_database_schema",
    "list_users",
    "format_notion_property",
    "build_task_properties",
    "build_task_content",
    "ResendError",
    "fetch_resend_email",
    "transform_to_mailgun_format",
]
