"""Prompt templates for discussion analysis."""

from typing import Optional


class PromptTemplates:
    """Prompts used by the discussion analyzer."""

    SYSTEM_PROMPT = """You are an assistant that reads team discussions (Slack threads, Figma comments, Notion comments) and turns them into clear, actionable tasks.

IMPORTANT GUIDELINES:
- Be concise and factual
- Only report what the discussion actually says or clearly implies
- Always respond with a single JSON object and nothing else"""

    @staticmethod
    def format_thread(thread) -> str:
        """Render a thread as plain text for the model."""
        lines = [
            f"Root message by {thread.root_message.author_handle}:",
            thread.root_message.content,
            "",
        ]
        for reply in thread.replies:
            lines.append(f"Reply by {reply.author_handle}:\n{reply.content}")
        return "\n".join(lines)

    @staticmethod
    def summary_prompt(discussion: str, source_type: Optional[str] = None,
                       custom_prompt: Optional[str] = None) -> str:
        source_context = f" from {source_type}" if source_type else ""

        return f"""Analyze this discussion thread{source_context} and provide:

1. A concise summary (2-3 sentences)
2. 3-5 key points or decisions
3. Overall sentiment (positive, neutral, or negative)

Discussion:
{discussion}

{custom_prompt or ""}

Respond in JSON format:
{{
  "summary": "...",
  "keyPoints": ["...", "...", "..."],
  "sentiment": "positive|neutral|negative",
  "confidence": 0.0-1.0
}}"""

    @staticmethod
    def task_detection_prompt(discussion: str, max_tasks: int = 5,
                              custom_prompt: Optional[str] = None) -> str:
        return f"""Analyze this discussion and identify actionable tasks.

Discussion:
{discussion}

{custom_prompt or ""}

Instructions:
- Identify specific, actionable tasks mentioned or implied
- Extract title, description, and priority for each task
- List concrete action items for each task when they are mentioned
- Classify each task as bug, feature, question or improvement
- Determine if there are multiple distinct tasks (isMultiTask: true/false)
- Maximum {max_tasks} tasks
- If no clear tasks, return empty array

Respond in JSON format:
{{
  "isMultiTask": true|false,
  "tasks": [
    {{
      "title": "...",
      "description": "...",
      "actionItems": ["..."],
      "priority": "low|medium|high|urgent",
      "type": "bug|feature|question|improvement",
      "assignee": "...",
      "dueDate": "YYYY-MM-DD",
      "tags": ["..."]
    }}
  ],
  "confidence": 0.0-1.0
}}"""
