"""Inference providers behind the proxy."""

from typing import Optional

import httpx

from aiproxy.app.core.config import settings
from aiproxy.app.core.http_client import get_http_client
from aiproxy.app.providers.base import BaseProvider
from aiproxy.app.providers.huggingface import HuggingFaceProvider, build_inference_payload

__all__ = [
    "BaseProvider",
    "HuggingFaceProvider",
    "build_inference_payload",
    "get_provider",
]


def get_provider(http_client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """Build the configured provider from current settings."""
    return HuggingFaceProvider(
        url=settings.huggingface_model_url,
        api_key=settings.huggingface_api_key,
        http_client=http_client or get_http_client(),
        timeout=settings.httpx_read_timeout,
    )
