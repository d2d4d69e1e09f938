import logging
from dataclasses import dataclass
from typing import Self, Sequence

import requests

from posmoni import variables
from posmoni.utils.url import domain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorConfig:
    consensus_endpoints: tuple[str, ...]
    execution_endpoints: tuple[str, ...] = ()
    validators: tuple[str, ...] = ()

    db_path: str = variables.DB_PATH
    db_connection_timeout: float = variables.DB_CONNECTION_TIMEOUT
    balances_state_id: str = variables.BALANCES_STATE_ID
    track_sync_interval: float = variables.TRACK_SYNC_INTERVAL_IN_SECONDS

    consensus_request_timeout: float = variables.HTTP_REQUEST_TIMEOUT_CONSENSUS
    consensus_retry_duration: float = variables.HTTP_REQUEST_RETRY_DURATION_CONSENSUS
    execution_request_timeout: float = variables.HTTP_REQUEST_TIMEOUT_EXECUTION
    execution_retry_duration: float = variables.HTTP_REQUEST_RETRY_DURATION_EXECUTION

    sse_read_timeout: float = variables.SSE_READ_TIMEOUT_IN_SECONDS
    sse_reconnect_delay: float = variables.SSE_RECONNECT_DELAY_IN_SECONDS

    @classmethod
    def from_variables(cls) -> Self:
        """Snapshot of the environment. Validators from external endpoints are fetched here."""
        validators = merge_validators(
            variables.VALIDATORS,
            variables.VALIDATORS_EXTERNAL_HTTP,
            variables.HTTP_REQUEST_TIMEOUT_VALIDATORS_EXTERNAL,
        )
        return cls(
            consensus_endpoints=tuple(variables.CONSENSUS_CLIENT_URI),
            execution_endpoints=tuple(variables.EXECUTION_CLIENT_URI),
            validators=tuple(validators),
        )


def merge_validators(validators: Sequence[str], external_urls: Sequence[str], timeout: float) -> list[str]:
    """
    Validators from config followed by validators from every external endpoint.
    Each endpoint must return a json list of indexes. Duplicates are dropped, first occurrence wins.
    """
    merged = list(validators)

    for url in external_urls:
        try:
            response = requests.get(url, timeout=timeout)
            response.raise_for_status()
            external = response.json()
        except (requests.RequestException, ValueError) as error:
            logger.warning({'msg': 'Failed to fetch validators.', 'domain': domain(url), 'error': str(error)})
            continue

        if not isinstance(external, list):
            logger.warning({'msg': 'Validators endpoint returned not a list.', 'domain': domain(url)})
            continue

        logger.info({'msg': 'Validators fetched.', 'domain': domain(url), 'count': len(external)})
        merged.extend(str(idx).strip() for idx in external)

    return list(dict.fromkeys(idx for idx in merged if idx))
