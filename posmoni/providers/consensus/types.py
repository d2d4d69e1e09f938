from dataclasses import dataclass
from typing import Self

from posmoni.types import SlotNumber
from posmoni.utils.dataclass import FromResponse


@dataclass
class ValidatorBalance(FromResponse):
    # https://ethereum.github.io/beacon-APIs/#/Beacon/getStateValidatorBalances
    # Both fields are decimal strings. Parsing is up to the consumer,
    # a missing field stays empty and fails there for this entry only.
    index: str = ''
    balance: str = ''


@dataclass
class BeaconSyncingStatus:
    # https://ethereum.github.io/beacon-APIs/#/Node/getSyncingStatus
    endpoint: str
    head_slot: SlotNumber | None = None
    sync_distance: int | None = None
    is_syncing: bool = False
    error: Exception | None = None

    @classmethod
    def from_response(cls, endpoint: str, **kwargs) -> Self:
        return cls(
            endpoint=endpoint,
            head_slot=SlotNumber(int(kwargs['head_slot'])),
            sync_distance=int(kwargs['sync_distance']),
            is_syncing=bool(kwargs['is_syncing']),
        )

    @classmethod
    def failed(cls, endpoint: str, error: Exception) -> Self:
        return cls(endpoint=endpoint, error=error)


@dataclass
class HealthResponse:
    endpoint: str
    healthy: bool = False
    error: Exception | None = None

    @classmethod
    def failed(cls, endpoint: str, error: Exception) -> Self:
        return cls(endpoint=endpoint, healthy=False, error=error)
