from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from aiproxy.app.services.payload import PromptRequest


class BaseProvider(ABC):
    """Base class for inference providers.

    Subclasses can accept an external httpx.AsyncClient for connection pooling,
    or create their own per call if not provided.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0
    ):
        """Initialize the provider.

        Args:
            url: The inference endpoint URL
            api_key: The API key for authentication (empty if unconfigured)
            http_client: Optional shared HTTP client for connection pooling
            timeout: Request timeout in seconds for per-call clients
        """
        self._http_client = http_client
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    @asynccontextmanager
    async def _client_context(self) -> AsyncIterator[httpx.AsyncClient]:
        """Yield the shared client, or a per-call client that is closed after."""
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    @abstractmethod
    async def generate(self, request: PromptRequest) -> Any:
        """Run inference for a validated prompt.

        Returns:
            The provider's JSON response, unmodified

        Raises:
            UpstreamError: If the provider fails or reports an error
        """
        pass
