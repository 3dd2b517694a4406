"""Base Protocol class for WFS access.

A Protocol owns the HTTP client used to talk to one service endpoint.
Subclasses implement the service-specific requests.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

DEFAULT_USER_AGENT = "wfsharvest/0.1 (WFS catalogue harvester)"


class Protocol(ABC):
    """Abstract base class for service protocols.

    Provides common HTTP client management for all protocol implementations.
    A client passed in by the caller is shared and never closed here.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        **kwargs: Any,
    ):
        """Initialize protocol.

        Args:
            base_url: Base URL for the service endpoint
            timeout: Request timeout in seconds (default: 30.0)
            client: Optional shared HTTP client
            user_agent: User-Agent header for requests made by an own client
            **kwargs: Protocol-specific configuration
        """
        self.base_url = base_url
        self.timeout = timeout
        self.user_agent = user_agent
        self.config = kwargs
        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    @abstractmethod
    async def get_capabilities(self) -> dict[str, Any]:
        """Get service capabilities (title, version, layers, formats)."""
        pass

    @abstractmethod
    async def get_features(
        self,
        layer: str,
        version: Optional[str] = None,
        output_format: Optional[str] = None,
        count: int = 5,
        **kwargs: Any,
    ) -> Any:
        """Request a small sample of features from one layer."""
        pass

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client.

        Returns:
            Async HTTP client instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.user_agent, "Accept-Encoding": "gzip, deflate"},
            )
            self._owns_client = True
        return self._client

    async def __aenter__(self) -> "Protocol":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit - cleanup HTTP client."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
