import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Optional, Protocol

import aiohttp

from scatterbrain.error_handler import ConnectionFailure, SynthesisHTTPError

logger = logging.getLogger(__name__)


class StreamTransport(Protocol):
    def post_stream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> AsyncContextManager[AsyncIterator[bytes]]:
        ...


class AiohttpStreamTransport:
    """POSTs JSON and hands back the response body as raw byte chunks."""

    def __init__(self, session: Optional[aiohttp.ClientSession] = None, timeout: float = 60):
        self._session = session
        self.timeout = aiohttp.ClientTimeout(total=timeout)

    @asynccontextmanager
    async def post_stream(
        self,
        url: str,
        payload: Dict[str, Any],
        headers: Optional[Dict[str, str]] = None
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        request_headers = {'Content-Type': 'application/json', 'Accept': 'text/event-stream'}
        request_headers.update(headers or {})

        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(timeout=self.timeout)
        try:
            try:
                response = await session.post(url, json=payload, headers=request_headers)
            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                logger.error(f"Could not reach synthesis endpoint {url}: {str(e)}")
                raise ConnectionFailure(f"Could not reach synthesis endpoint: {str(e)}") from e

            try:
                if response.status < 200 or response.status >= 300:
                    body = await _read_error_body(response)
                    logger.error(f"Synthesis endpoint returned {response.status}: {body}")
                    raise SynthesisHTTPError(response.status, body)

                yield response.content.iter_any()
            finally:
                response.release()
        finally:
            if owns_session:
                await session.close()


async def _read_error_body(response: aiohttp.ClientResponse) -> Dict[str, Any]:
    text = await response.text()
    try:
        body = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return {'error': text[:200]} if text else {}
    return body if isinstance(body, dict) else {'error': str(body)}
