import asyncio
import logging
import time
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from scatterbrain.cache import ResponseCache
from scatterbrain.config import Settings, get_settings
from scatterbrain.error_handler import (
    AppError,
    ErrorHandler,
    SynthesisAppError,
    SynthesisHTTPError,
    UpgradeRequiredError,
)
from scatterbrain.models import (
    EventType,
    StreamedEvent,
    StreamState,
    SynthesisOutcome,
    SynthesizeRequest,
)
from scatterbrain.retry import RetryCallback, RetryController
from scatterbrain.stream import EventCallback, StreamConsumer
from scatterbrain.transport import AiohttpStreamTransport, StreamTransport

logger = logging.getLogger(__name__)


class SynthesisClient:
    """Calls the remote synthesize endpoint and consumes its event stream.

    Results are cached per (input, preferences) so a repeat request inside
    the TTL never touches the network. Concurrent identical requests are not
    coalesced; each one runs its own attempt chain.
    """

    def __init__(
        self,
        endpoint: str,
        transport: StreamTransport,
        cache: Optional[ResponseCache] = None,
        retry: Optional[RetryController] = None,
        clock: Optional[Callable[[], float]] = None,
        headers: Optional[Dict[str, str]] = None
    ):
        self.endpoint = endpoint
        self.transport = transport
        self.cache = cache or ResponseCache()
        self.retry = retry or RetryController()
        self.headers = headers or {}
        self._clock = clock or time.time
        self._consumer = StreamConsumer(clock=self._clock)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[StreamTransport] = None,
        headers: Optional[Dict[str, str]] = None
    ) -> "SynthesisClient":
        settings = settings or get_settings()
        return cls(
            settings.synthesize_endpoint,
            transport or AiohttpStreamTransport(timeout=settings.request_timeout),
            cache=ResponseCache(default_ttl=settings.cache_ttl_seconds),
            retry=RetryController(max_retries=settings.max_retries, base_delay=settings.retry_base_delay),
            headers=headers
        )

    @property
    def events(self) -> List[StreamedEvent]:
        return self._consumer.events_seen

    @property
    def current_event(self) -> Optional[StreamedEvent]:
        return self._consumer.current_event

    @property
    def state(self) -> StreamState:
        return self._consumer.state

    def reset(self) -> None:
        self._consumer.reset()

    async def synthesize(
        self,
        request: SynthesizeRequest,
        on_event: Optional[EventCallback] = None,
        on_retry: Optional[RetryCallback] = None
    ) -> SynthesisOutcome:
        cache_key = self.cache.generate_key(request.input, request.preferences)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.info(f"Serving synthesis for session {request.session_id} from cache")
            return SynthesisOutcome(response=cached, from_cache=True)

        # Each call drains into its own consumer; the client only exposes the latest one
        consumer = StreamConsumer(clock=self._clock)
        self._consumer = consumer

        async def attempt() -> Dict[str, Any]:
            async with self.transport.post_stream(
                self.endpoint, request.to_payload(stream=True), self.headers
            ) as chunks:
                result = await consumer.consume(chunks, on_event)
            if not isinstance(result, dict):
                raise SynthesisAppError(f"Complete event carried {type(result).__name__}, expected an object")
            return result

        try:
            response = await self.retry.run(attempt, on_retry)
        except Exception as e:
            return self._failure(e)

        self.cache.set(cache_key, response)
        logger.info(f"Synthesis complete for session {request.session_id}")
        return SynthesisOutcome(response=response)

    async def stream(
        self,
        request: SynthesizeRequest,
        on_retry: Optional[RetryCallback] = None
    ) -> AsyncIterator[StreamedEvent]:
        """Yield events as they arrive instead of collecting a final result.

        A cache hit yields one synthetic ``complete`` event. Failures are
        raised, because an iterator has no value slot to carry them in.
        """
        cache_key = self.cache.generate_key(request.input, request.preferences)
        cached = self.cache.get(cache_key)
        if cached is not None:
            yield StreamedEvent(type=EventType.COMPLETE, data=cached, timestamp=self._clock())
            return

        queue: asyncio.Queue = asyncio.Queue()
        task = asyncio.ensure_future(
            self.synthesize(request, on_event=queue.put_nowait, on_retry=on_retry)
        )
        try:
            while not task.done():
                next_event = asyncio.ensure_future(queue.get())
                done, _ = await asyncio.wait({next_event, task}, return_when=asyncio.FIRST_COMPLETED)
                if next_event in done:
                    yield next_event.result()
                else:
                    next_event.cancel()

            while not queue.empty():
                yield queue.get_nowait()
        finally:
            if not task.done():
                task.cancel()

        outcome = task.result()
        if not outcome.succeeded:
            raise AppError(outcome.error_message, user_message=outcome.error_message)

    def _failure(self, error: Exception) -> SynthesisOutcome:
        message = ErrorHandler.handle_synthesis_error(error)
        category = ErrorHandler.categorize(error)
        upgrade_required = isinstance(error, UpgradeRequiredError) or (
            isinstance(error, SynthesisHTTPError) and error.upgrade_required
        )
        return SynthesisOutcome(
            error_message=message,
            error_category=category,
            upgrade_required=upgrade_required
        )
