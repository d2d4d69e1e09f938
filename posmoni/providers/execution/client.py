import json
import logging
from typing import Any, Sequence

from posmoni.constants import JSON_RPC_REQUEST_ID, JSON_RPC_VERSION
from posmoni.metrics.prometheus.basic import EL_REQUESTS_DURATION
from posmoni.providers.execution.exceptions import Eth1Error, ExecutionClientError
from posmoni.providers.execution.types import ExecutionSyncingStatus
from posmoni.providers.http_provider import HTTPProvider
from posmoni.providers.interfaces import ExecutionAPI
from posmoni.providers.poller import poll

logger = logging.getLogger(__name__)


class ExecutionClient(HTTPProvider, ExecutionAPI):
    """
    Plain JSON-RPC client. Every call targets the endpoint it was given,
    so there is no fallback between hosts.

    Spec: https://ethereum.org/en/developers/docs/apis/json-rpc/
    """

    PROVIDER_EXCEPTION = ExecutionClientError
    PROMETHEUS_HISTOGRAM = EL_REQUESTS_DURATION

    def __init__(self, request_timeout: float, retry_duration: float, retry: bool = True):
        super().__init__(None, request_timeout, retry_duration)
        self.retry = retry

    def call(self, endpoint: str, method: str, *params: Any) -> Any:
        """Returns `result` field of the response or raises Eth1Error with the `error` field"""
        request = {
            'id': JSON_RPC_REQUEST_ID,
            'jsonrpc': JSON_RPC_VERSION,
            'method': method,
            'params': list(params),
        }

        try:
            body = json.dumps(request)
        except (TypeError, ValueError) as error:
            raise ExecutionClientError(f'Could not encode params for {method}', status=0, text='') from error

        response = self._post_without_fallbacks(endpoint, body, retry=self.retry)

        if not isinstance(response, dict):
            raise ExecutionClientError(f'Unexpected response for {method}', status=0, text=str(response))

        if (error := response.get('error')) is not None:
            if not isinstance(error, dict):
                raise Eth1Error(0, str(error))
            raise Eth1Error(error.get('code', 0), error.get('message', ''))

        return response.get('result')

    def sync_status(self, endpoints: Sequence[str]) -> list[ExecutionSyncingStatus]:
        """Poll every endpoint concurrently. Result order follows completion, not the input."""
        return poll(endpoints, self._eth_syncing, ExecutionSyncingStatus.failed)

    def _eth_syncing(self, endpoint: str) -> ExecutionSyncingStatus:
        result = self.call(endpoint, 'eth_syncing')
        logger.debug({'msg': 'Execution sync status fetched.', 'result': result})
        return ExecutionSyncingStatus.from_result(endpoint, result)
