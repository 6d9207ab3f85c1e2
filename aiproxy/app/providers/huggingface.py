"""HuggingFace Inference API provider.

Sends conversational payloads to a hosted model and hands the JSON reply
back untouched.
"""

from typing import Any, Dict

import httpx

from aiproxy.app.core.logging import get_logger
from aiproxy.app.exceptions import UpstreamError
from aiproxy.app.providers.base import BaseProvider
from aiproxy.app.services.payload import PromptRequest

logger = get_logger(__name__)


def build_inference_payload(request: PromptRequest) -> Dict[str, Any]:
    """Shape a prompt for the HuggingFace conversational task."""
    if request.conversation is None:
        return {"inputs": request.prompt}
    return {
        "inputs": {
            "past_user_inputs": list(request.conversation.past_user_inputs),
            "generated_responses": list(request.conversation.generated_responses),
            "text": request.prompt,
        }
    }


class HuggingFaceProvider(BaseProvider):
    """Provider for a single HuggingFace hosted model."""

    async def generate(self, request: PromptRequest) -> Any:
        payload = build_inference_payload(request)

        try:
            async with self._client_context() as client:
                resp = await client.post(
                    self.url, headers=self._build_headers(), json=payload
                )
        except httpx.TimeoutException as e:
            raise UpstreamError(f"timeout: {e}")
        except httpx.HTTPError as e:
            raise UpstreamError(f"transport error: {e}")

        try:
            data = resp.json()
        except ValueError:
            raise UpstreamError(f"non-JSON response (status {resp.status_code})")

        # The Inference API reports failures (model loading, bad token, ...)
        # as {"error": "..."} with or without an error status.
        if isinstance(data, dict) and data.get("error"):
            raise UpstreamError(str(data["error"]))
        if resp.status_code >= 400:
            raise UpstreamError(f"status {resp.status_code}")

        return data
