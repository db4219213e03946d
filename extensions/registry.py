"""Registry client for publish-extensions.

Talks to an Open VSX compatible registry: extension lookup, namespace
creation and publishing.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import urljoin

import httpx

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = (429, 502, 503, 504)


class RegistryError(Exception):
    """Raised when registry operations fail."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class RegistryExtension:
    """Extension entry as published on the registry."""

    namespace: str
    name: str
    version: str
    timestamp: datetime | None = None
    url: str | None = None

    @property
    def id(self) -> str:
        return f"{self.namespace}.{self.name}"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryExtension:
        """Create from API response."""
        timestamp = data.get("timestamp")
        return cls(
            namespace=data["namespace"],
            name=data["name"],
            version=data["version"],
            timestamp=(
                datetime.fromisoformat(timestamp.replace("Z", "+00:00")) if timestamp else None
            ),
            url=data.get("url"),
        )


class RegistryClient:
    """Client for an Open VSX compatible registry.

    Example:
        >>> registry = RegistryClient(access_token="...")
        >>> await registry.get_extension("redhat.java")
        >>> await registry.publish(Path("/tmp/artifacts/redhat.java.vsix"))
    """

    DEFAULT_REGISTRY_URL = "https://open-vsx.org"

    def __init__(
        self,
        registry_url: str | None = None,
        access_token: str | None = None,
        timeout: float = 60.0,
        max_retries: int = 5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the registry client.

        Args:
            registry_url: Base URL of the registry.
            access_token: Personal access token for namespace creation and publishing.
            timeout: Per-request timeout in seconds.
            max_retries: Retries for rate limiting and transient server errors.
            transport: Custom httpx transport (used by tests).
        """
        self.registry_url = (registry_url or self.DEFAULT_REGISTRY_URL).rstrip("/")
        self.access_token = access_token or None
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    def extension_url(self, namespace: str, name: str) -> str:
        """Public page of an extension on the registry."""
        return f"{self.registry_url}/extension/{namespace}/{name}"

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Make an API request, retrying transient failures."""
        url = urljoin(self.registry_url + "/", endpoint.lstrip("/"))
        attempts = self.max_retries + 1

        for attempt in range(1, attempts + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self.timeout, transport=self._transport
                ) as client:
                    response = await client.request(
                        method,
                        url,
                        params=params,
                        json=json_data,
                        content=content,
                        headers=headers,
                    )
            except httpx.TransportError as e:
                if attempt < attempts:
                    await self._backoff(attempt, f"connection error: {e}")
                    continue
                raise RegistryError(f"Connection error: {e}") from e

            if response.status_code in RETRY_STATUS_CODES and attempt < attempts:
                await self._backoff(attempt, f"HTTP {response.status_code}")
                continue

            return response

        raise RegistryError(f"Request failed: {method} {url}")

    async def _backoff(self, attempt: int, reason: str) -> None:
        wait = min(2 ** (attempt - 1), 8)
        logger.debug("Registry %s, retrying in %ss (attempt %d)", reason, wait, attempt)
        await asyncio.sleep(wait)

    def _require_token(self) -> str:
        if not self.access_token:
            raise RegistryError("An access token is required for this operation.")
        return self.access_token

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        """Extract the registry's error text from a response."""
        try:
            data = response.json()
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"API error: {response.status_code} {response.text[:200]}".strip()

    async def get_extension(self, extension_id: str) -> RegistryExtension | None:
        """Get the latest published version of an extension.

        Args:
            extension_id: Extension id (namespace.name).

        Returns:
            Registry entry, or None if the extension is not published.

        Raises:
            RegistryError: If the lookup itself fails.
        """
        namespace, name = extension_id.split(".", 1)
        response = await self._request("GET", f"/api/{namespace}/{name}")
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise RegistryError(self._error_message(response), response.status_code)

        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            # Some registry versions answer 200 with an error body for unknown ids
            return None
        return RegistryExtension.from_dict(data)

    async def create_namespace(self, name: str) -> None:
        """Create a public namespace.

        Args:
            name: Namespace name.

        Raises:
            RegistryError: If the registry refuses, e.g. because it already exists.
        """
        response = await self._request(
            "POST",
            "/api/-/namespace/create",
            params={"token": self._require_token()},
            json_data={"name": name},
        )
        if response.status_code >= 400:
            raise RegistryError(self._error_message(response), response.status_code)

    async def publish(self, extension_file: Path) -> RegistryExtension:
        """Upload a packaged extension.

        Args:
            extension_file: Path to the .vsix file.

        Returns:
            The published registry entry.

        Raises:
            RegistryError: If publishing fails (the registry's message is kept verbatim).
        """
        content = await asyncio.to_thread(Path(extension_file).read_bytes)
        response = await self._request(
            "POST",
            "/api/-/publish",
            params={"token": self._require_token()},
            content=content,
            headers={"Content-Type": "application/octet-stream"},
        )
        if response.status_code >= 400:
            raise RegistryError(self._error_message(response), response.status_code)

        data = response.json()
        if isinstance(data, dict) and data.get("error"):
            raise RegistryError(str(data["error"]), response.status_code)
        return RegistryExtension.from_dict(data)
