"""Content-addressed storage for full vulnerability write-ups."""

import logging
from abc import ABC, abstractmethod

import httpx

from api.services.registry.errors import ContentUnavailableError

logger = logging.getLogger(__name__)


class ContentStore(ABC):
    """Abstract base class for content-addressed blob stores."""

    @abstractmethod
    async def put(self, data: bytes, name: str) -> str:
        """Upload a blob and return its content hash."""
        pass

    @abstractmethod
    async def get(self, content_hash: str, timeout: float | None = None) -> bytes:
        """Fetch a blob by content hash.

        Raises:
            ContentUnavailableError: If the blob cannot be retrieved
        """
        pass

    @abstractmethod
    def url_for(self, content_hash: str) -> str:
        """Public URL of a blob."""
        pass

    @abstractmethod
    async def ping(self, timeout: float | None = None) -> bool:
        """Return True if the store answers."""
        pass


class PinataContentStore(ContentStore):
    """IPFS storage pinned through Pinata, read back through a gateway."""

    def __init__(
        self,
        jwt: str,
        api_url: str = "https://api.pinata.cloud",
        gateway_url: str = "https://gateway.pinata.cloud",
        timeout: float = 30.0,
        fetch_timeout: float = 3.0,
    ):
        """Initialize the Pinata client.

        Args:
            jwt: Pinata API bearer token
            api_url: Pinning API base URL
            gateway_url: IPFS gateway base URL
            timeout: Upload timeout in seconds
            fetch_timeout: Default read timeout in seconds
        """
        self.jwt = jwt
        self.api_url = api_url.rstrip("/")
        self.gateway_url = gateway_url.rstrip("/")
        self.timeout = timeout
        self.fetch_timeout = fetch_timeout

    async def put(self, data: bytes, name: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.api_url}/pinning/pinFileToIPFS",
                    files={"file": (name, data, "application/json")},
                    headers={"Authorization": f"Bearer {self.jwt}"},
                )
                response.raise_for_status()
                content_hash = response.json()["IpfsHash"]
        except httpx.HTTPError as e:
            logger.error(f"IPFS upload failed for {name}: {e}")
            raise ContentUnavailableError(f"Upload of {name} failed: {e}") from e
        except (KeyError, ValueError) as e:
            logger.error(f"Unexpected pinning response for {name}: {e}")
            raise ContentUnavailableError(f"Unexpected pinning response for {name}") from e

        logger.info(f"IPFS upload success: {name} -> {content_hash}")
        return content_hash

    async def get(self, content_hash: str, timeout: float | None = None) -> bytes:
        try:
            async with httpx.AsyncClient(timeout=timeout or self.fetch_timeout) as client:
                response = await client.get(self.url_for(content_hash))
                response.raise_for_status()
                return response.content
        except httpx.TimeoutException as e:
            logger.warning(f"IPFS fetch timeout for {content_hash}")
            raise ContentUnavailableError(f"Timed out fetching {content_hash}") from e
        except httpx.HTTPError as e:
            logger.warning(f"IPFS fetch failed for {content_hash}: {e}")
            raise ContentUnavailableError(f"Could not fetch {content_hash}: {e}") from e

    def url_for(self, content_hash: str) -> str:
        return f"{self.gateway_url}/ipfs/{content_hash}"

    async def ping(self, timeout: float | None = None) -> bool:
        try:
            async with httpx.AsyncClient(timeout=timeout or self.fetch_timeout) as client:
                response = await client.head(
                    self.gateway_url,
                    headers={"User-Agent": "BVC-Registry-Health-Check/1.0"},
                )
                return response.status_code < 500
        except httpx.HTTPError as e:
            logger.warning(f"IPFS gateway unreachable: {e}")
            return False
