from typing import Final

# https://ethereum.github.io/beacon-APIs/#/Events/eventstream
FINALIZED_CHECKPOINT_TOPIC: Final = '/eth/v1/events?topics=finalized_checkpoint'

# State used to query validator balances when no other state is configured
DEFAULT_BALANCES_STATE_ID: Final = 'head'

UINT64_MAX: Final = 2**64 - 1

JSON_RPC_VERSION: Final = '2.0'
JSON_RPC_REQUEST_ID: Final = 1
