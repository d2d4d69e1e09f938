import json
import logging
import threading
from dataclasses import dataclass
from http import HTTPStatus
from typing import Iterable, Iterator, Self

from requests import RequestException

from posmoni.constants import FINALIZED_CHECKPOINT_TOPIC
from posmoni.providers.exceptions import ProtocolError, TransportError
from posmoni.providers.interfaces import StreamSubscriber
from posmoni.providers.retry import RetryingTransport
from posmoni.types import BlockRoot, StateRoot
from posmoni.utils.exception import ParseError
from posmoni.utils.stream import Stream
from posmoni.utils.url import domain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Checkpoint:
    # https://ethereum.github.io/beacon-APIs/#/Events/eventstream finalized_checkpoint
    block: BlockRoot
    state: StateRoot
    epoch: str

    @classmethod
    def from_response(cls, **kwargs) -> Self:
        return cls(block=kwargs['block'], state=kwargs['state'], epoch=kwargs['epoch'])


@dataclass(frozen=True)
class SubscribeOptions:
    endpoints: tuple[str, ...]
    subscriber: StreamSubscriber
    stream_url: str = FINALIZED_CHECKPOINT_TOPIC


@dataclass
class ServerSentEvent:
    event: str = 'message'
    data: str = ''
    id: str | None = None


def iter_events(lines: Iterable[str]) -> Iterator[ServerSentEvent]:
    """
    Group decoded lines of an event stream into events.

    Format: https://html.spec.whatwg.org/multipage/server-sent-events.html#event-stream-interpretation
    An event is dispatched on a blank line. Unterminated event at the end of the stream is discarded.
    """
    event = ServerSentEvent()
    data: list[str] = []

    for line in lines:
        if not line:
            if data or event.event != 'message':
                event.data = '\n'.join(data)
                yield event
            event = ServerSentEvent()
            data = []
            continue

        if line.startswith(':'):
            continue

        field, _, value = line.partition(':')
        if value.startswith(' '):
            value = value[1:]

        match field:
            case 'data':
                data.append(value)
            case 'event':
                event.event = value
            case 'id':
                event.id = value
            case _:
                # retry and unknown fields
                pass


def parse_event_data(data: str) -> Checkpoint:
    try:
        payload = json.loads(data)
        return Checkpoint.from_response(**payload)
    except (ValueError, TypeError, KeyError) as error:
        raise ParseError(f'Malformed checkpoint event: {data!r}') from error


def handle_event(event: ServerSentEvent, stream: Stream[Checkpoint], source: str = '') -> None:
    if not event.data:
        logger.debug({'msg': 'Empty event dropped.', 'event': event.event, 'source': source})
        return

    try:
        checkpoint = parse_event_data(event.data)
    except ParseError as error:
        logger.error({'msg': 'Failed to decode event.', 'error': repr(error.__cause__), 'source': source})
        return

    logger.info({'msg': 'Finalized checkpoint received.', 'epoch': checkpoint.epoch, 'source': source})
    stream.put(checkpoint)


class SSESubscriber(StreamSubscriber):
    """
    Listens to a beacon node event stream over a long-lived GET request.

    A dropped, refused or stalled connection is logged and opened again after `reconnect_delay`
    until cancel is set. Cancel is checked between events, a blocked read lasts up to `read_timeout`.
    """

    def __init__(self, transport: RetryingTransport, reconnect_delay: float, read_timeout: float):
        self.transport = transport
        self.reconnect_delay = reconnect_delay
        self.read_timeout = read_timeout

    def listen(self, url: str, stream: Stream[Checkpoint], cancel: threading.Event) -> None:
        host = domain(url)

        while not cancel.is_set():
            try:
                self._consume(url, stream, cancel)
            except (TransportError, ProtocolError, RequestException) as error:
                logger.warning({'msg': 'Event stream connection failed.', 'error': str(error), 'domain': host})
            else:
                if cancel.is_set():
                    break
                logger.warning({'msg': 'Event stream closed by the node.', 'domain': host})

            if cancel.wait(self.reconnect_delay):
                break

            logger.info({'msg': 'Reconnecting to event stream.', 'domain': host})

        logger.info({'msg': 'Event stream listener stopped.', 'domain': host})

    def _consume(self, url: str, stream: Stream[Checkpoint], cancel: threading.Event) -> None:
        response = self.transport.get(
            url,
            stream=True,
            headers={'Accept': 'text/event-stream'},
            timeout=(self.transport.request_timeout, self.read_timeout),
        )

        with response:
            if response.status_code != HTTPStatus.OK:
                raise ProtocolError(f'Event stream {domain(url)} responded with {response.status_code}')

            # Event stream is always utf-8 and servers rarely send the charset
            response.encoding = 'utf-8'
            logger.info({'msg': 'Subscribed to event stream.', 'domain': domain(url)})

            for event in iter_events(response.iter_lines(decode_unicode=True)):
                handle_event(event, stream, source=domain(url))
                if cancel.is_set():
                    return


def subscribe(cancel: threading.Event, options: SubscribeOptions) -> Stream[Checkpoint]:
    """
    Start one listener thread per endpoint, all writing to the returned stream.
    No ordering between endpoints and no deduplication: the same checkpoint reported
    by two nodes comes out twice. Setting `cancel` closes the stream.
    """
    stream: Stream[Checkpoint] = Stream()

    if not options.endpoints:
        logger.warning({'msg': 'No endpoints to subscribe to.'})

    for num, endpoint in enumerate(options.endpoints):
        url = endpoint.rstrip('/') + options.stream_url
        threading.Thread(
            target=options.subscriber.listen,
            args=(url, stream, cancel),
            daemon=True,
            name=f'subscriber-{num}',
        ).start()

    def close_on_cancel():
        cancel.wait()
        stream.close()
        logger.info({'msg': 'Checkpoint stream closed.'})

    threading.Thread(target=close_on_cancel, daemon=True, name='subscriber-closer').start()

    return stream
