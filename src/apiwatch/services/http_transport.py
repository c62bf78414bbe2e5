"""
HTTP transport used by the prober.

Wraps httpx.AsyncClient behind a single `perform(method, url)` call that
returns any status code as a normal response and raises TransportError only
when no response arrived at all.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

import httpx

from apiwatch.exceptions import TransportError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class TransportResponse:
    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: Optional[str] = None


class HttpTransport:
    """
    Request/response abstraction over one shared httpx.AsyncClient.

    The client is created on construction (or passed in) and reused for every
    probe; `aclose()` releases its connection pool.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        body_sample_size: int = 2048,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout
        self.body_sample_size = body_sample_size
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def perform(self, method: str, url: str) -> TransportResponse:
        """
        Issue one request and return whatever the server answered.

        The body is streamed and only the first `body_sample_size` characters
        are read; with a sample size of 0 the body is never downloaded.

        Raises:
            TransportError: on timeout, connection failure or an invalid URL.
        """
        try:
            async with self.client.stream(method.upper(), url) as response:
                body = await self._read_sample(response)
        except httpx.TimeoutException as e:
            raise TransportError(f"Request timeout after {self.timeout:g}s") from e
        except httpx.ConnectError as e:
            raise TransportError(f"Connection error: {e}") from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise TransportError(str(e) or e.__class__.__name__) from e

        return TransportResponse(
            status_code=response.status_code,
            headers=flatten_headers(response.headers),
            body=body,
        )

    async def _read_sample(self, response: httpx.Response) -> Optional[str]:
        if self.body_sample_size <= 0:
            return None
        chunks = []
        size = 0
        async for chunk in response.aiter_text():
            chunks.append(chunk)
            size += len(chunk)
            if size >= self.body_sample_size:
                break
        return "".join(chunks)[: self.body_sample_size]

    async def aclose(self) -> None:
        await self.client.aclose()


def flatten_headers(headers: httpx.Headers) -> Dict[str, str]:
    """Lower-cased header map; repeated headers such as set-cookie are comma-joined."""
    return {name.lower(): ", ".join(headers.get_list(name)) for name in headers.keys()}
