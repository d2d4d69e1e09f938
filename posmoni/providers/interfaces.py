from abc import ABC, abstractmethod
from threading import Event
from typing import Any, Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from posmoni.providers.consensus.types import BeaconSyncingStatus, HealthResponse, ValidatorBalance
    from posmoni.providers.execution.types import ExecutionSyncingStatus
    from posmoni.providers.subscribe import Checkpoint
    from posmoni.utils.stream import Stream


class ConsensusAPI(ABC):
    """Beacon chain HTTP API"""

    @abstractmethod
    def set_endpoints(self, endpoints: Sequence[str]) -> None: ...

    @abstractmethod
    def validator_balances(self, state_id: str, validator_idxs: Sequence[str]) -> list['ValidatorBalance']: ...

    @abstractmethod
    def health(self, endpoints: Sequence[str]) -> list['HealthResponse']: ...

    @abstractmethod
    def sync_status(self, endpoints: Sequence[str]) -> list['BeaconSyncingStatus']: ...


class ExecutionAPI(ABC):
    """Execution client JSON-RPC API"""

    @abstractmethod
    def call(self, endpoint: str, method: str, *params: Any) -> Any: ...

    @abstractmethod
    def sync_status(self, endpoints: Sequence[str]) -> list['ExecutionSyncingStatus']: ...


class StreamSubscriber(ABC):
    """Subscriber for a given events topic"""

    @abstractmethod
    def listen(self, url: str, stream: 'Stream[Checkpoint]', cancel: Event) -> None:
        """Blocks and publishes decoded checkpoints into the stream until cancel is set"""
