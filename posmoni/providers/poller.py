import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence, TypeVar

from posmoni.utils.url import domain

logger = logging.getLogger(__name__)

R = TypeVar('R')


def poll(
    endpoints: Sequence[str],
    check: Callable[[str], R],
    on_error: Callable[[str, Exception], R],
) -> list[R]:
    """
    Run `check` against every endpoint concurrently, one thread per endpoint.

    Returns exactly one result per endpoint in completion order, not in the input order.
    An exception raised by `check` is turned into a result by `on_error`, so one failed
    endpoint never affects the others.
    NOTE: no concurrency cap, thread count grows with the endpoints count.
    """
    if not endpoints:
        logger.warning({'msg': 'No endpoints provided to poll.'})
        return []

    results: list[R] = []

    with ThreadPoolExecutor(max_workers=len(endpoints), thread_name_prefix='poller') as executor:
        futures = {executor.submit(check, endpoint): endpoint for endpoint in endpoints}

        for future in as_completed(futures):
            endpoint = futures[future]
            try:
                results.append(future.result())
            except Exception as error:  # pylint: disable=broad-exception-caught
                logger.debug({'msg': 'Endpoint check failed.', 'domain': domain(endpoint), 'error': str(error)})
                results.append(on_error(endpoint, error))

    return results
