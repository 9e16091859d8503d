import codecs
import json
import logging
import time
from typing import Any, AsyncIterable, AsyncIterator, Callable, List, Optional, Union

from scatterbrain.error_handler import StreamIncompleteError, SynthesisAppError
from scatterbrain.models import EventType, StreamedEvent, StreamState

logger = logging.getLogger(__name__)

EVENT_PREFIX = 'data: '

Chunk = Union[bytes, str]
EventCallback = Callable[[StreamedEvent], None]


class StreamConsumer:
    """Decodes a `data: {...}` framed event stream into StreamedEvents.

    One consumer tracks one request at a time: ``events`` starts from a clean
    slate, accumulates every event it yields and records whether a terminal
    ``complete`` event arrived before end-of-input.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.time
        self.reset()

    def reset(self) -> None:
        self.events_seen: List[StreamedEvent] = []
        self.current_event: Optional[StreamedEvent] = None
        self.result: Optional[Any] = None
        self.error_message: Optional[str] = None
        self.state = StreamState.IDLE

    async def events(self, chunks: AsyncIterable[Chunk]) -> AsyncIterator[StreamedEvent]:
        self.reset()
        self.state = StreamState.STREAMING
        decoder = codecs.getincrementaldecoder('utf-8')(errors='replace')
        pending = ''

        try:
            async for chunk in chunks:
                text = decoder.decode(chunk) if isinstance(chunk, bytes) else chunk
                *lines, pending = (pending + text).split('\n')
                for line in lines:
                    event = self._parse_line(line)
                    if event is not None:
                        yield self._record(event)

            # Flush whatever the final chunk left without a trailing newline
            pending += decoder.decode(b'', final=True)
            for line in pending.split('\n'):
                event = self._parse_line(line)
                if event is not None:
                    yield self._record(event)
        except Exception:
            self.state = StreamState.ERRORED
            raise

        if self.result is not None:
            self.state = StreamState.COMPLETED
        elif self.error_message is not None:
            self.state = StreamState.ERRORED
        else:
            self.state = StreamState.ENDED_WITHOUT_COMPLETION

    async def consume(self, chunks: AsyncIterable[Chunk], on_event: Optional[EventCallback] = None) -> Any:
        """Drain the stream and return the ``complete`` event's data."""
        async for event in self.events(chunks):
            if on_event:
                on_event(event)

        if self.result is not None:
            return self.result
        if self.error_message is not None:
            raise SynthesisAppError(self.error_message)
        raise StreamIncompleteError()

    def _parse_line(self, line: str) -> Optional[StreamedEvent]:
        line = line.rstrip('\r')
        if not line.startswith(EVENT_PREFIX):
            return None

        payload = line[len(EVENT_PREFIX):].strip()
        if not payload or payload == '[DONE]':
            return None

        try:
            record = json.loads(payload)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed stream record: {str(e)}")
            return None

        if not isinstance(record, dict):
            logger.warning(f"Skipping stream record that is not an object: {payload[:80]}")
            return None

        try:
            event_type = EventType(record.get('type'))
        except ValueError:
            logger.warning(f"Skipping stream record with unknown type: {record.get('type')}")
            return None

        return StreamedEvent(type=event_type, data=record.get('data'), timestamp=self._clock())

    def _record(self, event: StreamedEvent) -> StreamedEvent:
        self.events_seen.append(event)
        self.current_event = event

        if event.type == EventType.COMPLETE:
            self.result = event.data
        elif event.type == EventType.ERROR:
            self.error_message = _error_text(event.data)
            logger.warning(f"Stream reported an error: {self.error_message}")

        return event


def _error_text(data: Any) -> str:
    if isinstance(data, dict):
        return str(data.get('message') or data.get('error') or 'Synthesis failed')
    if data:
        return str(data)
    return 'Synthesis failed'
