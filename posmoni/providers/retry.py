import logging
import time
from functools import wraps
from http import HTTPStatus
from typing import Callable, TypeVar
from urllib.parse import urlparse

from requests import ConnectionError as RequestsConnectionError, Response, Session, Timeout
from requests.adapters import HTTPAdapter
from urllib3 import Retry

from posmoni.providers.exceptions import TransportError

logger = logging.getLogger(__name__)

T = TypeVar('T')

# DNS resolution, refused connection, connect and read timeouts.
# Anything that got an HTTP response back is not in this list.
CONNECTION_ERRORS = (RequestsConnectionError, Timeout)

DEFAULT_BACKOFF_FACTOR = 0.5


def with_backoff(retry_duration: float, backoff_factor: float = DEFAULT_BACKOFF_FACTOR):
    """
    Retry the wrapped call on connection-level errors with exponential backoff.

    First retry is immediate, then delays grow as `backoff_factor * 2 ** (n - 1)` without a fixed cap.
    The only bound is `retry_duration`: when the next attempt would start after the budget is spent,
    TransportError is raised from the last connection error.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapped(*args, **kwargs) -> T:
            # Retry object is used as backoff calculator only. Budget is checked here.
            retry = Retry(total=None, backoff_factor=backoff_factor, backoff_max=max(retry_duration, 0))
            started_at = time.monotonic()

            while True:
                try:
                    return func(*args, **kwargs)
                except CONNECTION_ERRORS as error:
                    retry = retry.increment(error=error)
                    delay = retry.get_backoff_time()
                    elapsed = time.monotonic() - started_at

                    if elapsed + delay >= retry_duration:
                        raise TransportError(
                            f'Retry budget of {retry_duration}s exhausted after {len(retry.history)} attempts',
                        ) from error

                    logger.warning({
                        'msg': 'Request failed. Retrying request.',
                        'error': str(error),
                        'attempt': len(retry.history),
                        'delay': delay,
                    })
                    time.sleep(delay)

        return wrapped

    return decorator


class RetryingTransport:
    """
    Single HTTP call with retries on connection failures bounded by elapsed time.

    A non-2xx response is logged and returned as is. Status check is the caller's job.
    """

    def __init__(
        self,
        retry_duration: float,
        request_timeout: float | tuple[float, float | None] | None = None,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    ):
        self.retry_duration = retry_duration
        self.request_timeout = request_timeout
        self.backoff_factor = backoff_factor

        # Adapter must not retry by itself, otherwise it eats the budget unnoticed
        adapter = HTTPAdapter(max_retries=Retry(total=0, read=False, redirect=False, raise_on_status=False))
        self.session = Session()
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)

    def send(self, method: str, url: str, retry: bool = True, **kwargs) -> Response:
        if retry:
            return with_backoff(self.retry_duration, self.backoff_factor)(self._send_once)(method, url, **kwargs)

        try:
            return self._send_once(method, url, **kwargs)
        except CONNECTION_ERRORS as error:
            raise TransportError(f'{method} {urlparse(url).netloc} failed without retries', reason='failed') from error

    def get(self, url: str, **kwargs) -> Response:
        return self.send('GET', url, **kwargs)

    def post(self, url: str, **kwargs) -> Response:
        return self.send('POST', url, **kwargs)

    def _send_once(self, method: str, url: str, **kwargs) -> Response:
        kwargs.setdefault('timeout', self.request_timeout)
        try:
            response = self.session.request(method, url, **kwargs)
        except CONNECTION_ERRORS as error:
            logger.error({'msg': f'{method} request failed.', 'error': str(error), 'domain': urlparse(url).netloc})
            raise

        if response.status_code != HTTPStatus.OK:
            logger.error({
                'msg': f'Bad response, got: {response.status_code}',
                'method': method,
                'domain': urlparse(url).netloc,
            })

        return response
