from http import HTTPStatus
from typing import Sequence

from posmoni.metrics.logging import logging
from posmoni.metrics.prometheus.basic import CL_REQUESTS_DURATION
from posmoni.providers.consensus.types import BeaconSyncingStatus, HealthResponse, ValidatorBalance
from posmoni.providers.http_provider import HTTPProvider, data_is_dict, data_is_list
from posmoni.providers.exceptions import NotOkResponse
from posmoni.providers.interfaces import ConsensusAPI
from posmoni.providers.poller import poll
from posmoni.utils.dataclass import list_of_dataclasses

logger = logging.getLogger(__name__)


class ConsensusClientError(NotOkResponse):
    pass


class ConsensusClient(HTTPProvider, ConsensusAPI):
    """
    API specifications can be found here
    https://ethereum.github.io/beacon-APIs/

    state_id
    State identifier. Can be one of: "head" (canonical head in node's view), "genesis", "finalized", "justified", <slot>, <hex encoded stateRoot with 0x prefix>.
    """

    PROVIDER_EXCEPTION = ConsensusClientError
    PROMETHEUS_HISTOGRAM = CL_REQUESTS_DURATION

    API_GET_VALIDATOR_BALANCES = 'eth/v1/beacon/states/{}/validator_balances'
    API_GET_SYNCING = 'eth/v1/node/syncing'
    API_GET_HEALTH = 'eth/v1/beacon/health'

    def set_endpoints(self, endpoints: Sequence[str]) -> None:
        """Hosts in priority order. The first one is asked first, the rest are fallbacks."""
        self.hosts = list(endpoints)

    @list_of_dataclasses(ValidatorBalance.from_response)
    def validator_balances(self, state_id: str, validator_idxs: Sequence[str]) -> list[ValidatorBalance]:
        """Spec: https://ethereum.github.io/beacon-APIs/#/Beacon/getStateValidatorBalances"""
        data, _ = self._get(
            self.API_GET_VALIDATOR_BALANCES,
            path_params=(state_id,),
            query_params={'id': ','.join(validator_idxs)},
            retval_validator=data_is_list,
        )
        return data

    def sync_status(self, endpoints: Sequence[str]) -> list[BeaconSyncingStatus]:
        """Poll every endpoint concurrently. Result order follows completion, not the input."""
        return poll(endpoints, self._get_syncing, BeaconSyncingStatus.failed)

    def health(self, endpoints: Sequence[str]) -> list[HealthResponse]:
        return poll(endpoints, self._get_health, HealthResponse.failed)

    def _get_syncing(self, endpoint: str) -> BeaconSyncingStatus:
        """Spec: https://ethereum.github.io/beacon-APIs/#/Node/getSyncingStatus"""
        data, _ = self._get_without_fallbacks(endpoint, self.API_GET_SYNCING, retval_validator=data_is_dict)
        status = BeaconSyncingStatus.from_response(endpoint, **data)
        logger.debug({'msg': 'Consensus sync status fetched.', 'status': status})
        return status

    def _get_health(self, endpoint: str) -> HealthResponse:
        """
        Status code is the only signal.
        200 - healthy, 206 - syncing, 503 - not initialized or having issues.
        """
        status = self._get_status_code(endpoint, self.API_GET_HEALTH)
        if status == HTTPStatus.OK:
            return HealthResponse(endpoint=endpoint, healthy=True)

        raise self.PROVIDER_EXCEPTION(f'Node is not healthy. Status code: {status}', status=status, text='')
