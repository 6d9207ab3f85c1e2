"""Validation of proxied prompt payloads."""

import json
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from aiproxy.app.core.config import settings
from aiproxy.app.exceptions import ClientError


class ConversationHistory(BaseModel):
    """Prior turns of a conversation, oldest first."""

    model_config = ConfigDict(strict=True)

    past_user_inputs: list[str]
    generated_responses: list[str]


class PromptRequest(BaseModel):
    """A validated prompt ready to forward."""

    prompt: str = Field(..., min_length=1)
    conversation: Optional[ConversationHistory] = None


def parse_body(raw: bytes) -> Any:
    """Decode a JSON request body; an empty body is an empty object."""
    if not raw or not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise ClientError("Invalid JSON in request body")


def validate_prompt_request(
    body: Any,
    max_prompt_length: Optional[int] = None,
    max_turns: Optional[int] = None,
) -> PromptRequest:
    """Check a decoded body and build a PromptRequest.

    Raises:
        ClientError: With the message the caller should see
    """
    max_prompt_length = max_prompt_length or settings.max_prompt_length
    max_turns = max_turns or settings.max_conversation_turns

    if not isinstance(body, dict):
        body = {}

    prompt = body.get("prompt")
    if not isinstance(prompt, str) or not prompt:
        raise ClientError("Invalid or missing prompt")
    if len(prompt) > max_prompt_length:
        raise ClientError(
            f"Prompt too long (max {max_prompt_length} characters)"
        )

    conversation = None
    raw_conversation = body.get("conversation")
    # Absent and null both mean "no history".
    if raw_conversation is not None:
        try:
            conversation = ConversationHistory.model_validate(raw_conversation)
        except ValidationError:
            raise ClientError("Invalid conversation history")
        if (
            len(conversation.past_user_inputs) > max_turns
            or len(conversation.generated_responses) > max_turns
        ):
            raise ClientError("Invalid conversation history")

    return PromptRequest(prompt=prompt, conversation=conversation)
