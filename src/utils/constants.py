"""Identifiers shared across the service."""

# Owner and author of every row written by the processing pipeline,
# webhooks and scheduled jobs.
SYSTEM_USER_ID = "system"
