from dataclasses import dataclass
from typing import Self

from posmoni.types import BlockNumber


def _quantity(value: str | None) -> BlockNumber | None:
    """JSON-RPC quantities are 0x prefixed hex strings"""
    if value is None:
        return None
    return BlockNumber(int(value, 16))


@dataclass
class ExecutionSyncingStatus:
    # https://ethereum.org/en/developers/docs/apis/json-rpc/#eth_syncing
    endpoint: str
    starting_block: BlockNumber | None = None
    current_block: BlockNumber | None = None
    highest_block: BlockNumber | None = None
    is_syncing: bool = False
    error: Exception | None = None

    @classmethod
    def from_result(cls, endpoint: str, result: bool | dict) -> Self:
        """`false` when the node is synced, progress object otherwise"""
        if result is False:
            return cls(endpoint=endpoint, is_syncing=False)

        if not isinstance(result, dict):
            raise ValueError(f'Unexpected eth_syncing result: {result!r}')

        current_block = _quantity(result.get('currentBlock'))
        return cls(
            endpoint=endpoint,
            starting_block=_quantity(result.get('startingBlock')),
            current_block=current_block,
            highest_block=_quantity(result.get('highestBlock')),
            is_syncing=current_block is not None,
        )

    @classmethod
    def failed(cls, endpoint: str, error: Exception) -> Self:
        return cls(endpoint=endpoint, error=error)
