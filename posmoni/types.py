from enum import StrEnum
from typing import NewType

from eth_typing import HexStr


class MonitorModule(StrEnum):
    MONITOR = 'monitor'
    TRACK_SYNC = 'track_sync'


class EndpointKind(StrEnum):
    CONSENSUS = 'consensus'
    EXECUTION = 'execution'


SlotNumber = NewType('SlotNumber', int)
BlockNumber = NewType('BlockNumber', int)
StateRoot = NewType('StateRoot', HexStr)
BlockRoot = NewType('BlockRoot', HexStr)

Gwei = NewType('Gwei', int)

ValidatorIndex = NewType('ValidatorIndex', int)
