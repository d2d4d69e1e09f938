from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info
from prometheus_client.utils import INF

from posmoni.variables import PROMETHEUS_PREFIX


class Status(Enum):
    SUCCESS = 'success'
    FAILURE = 'failure'


ENV_VARIABLES_INFO = Info(
    'env_variables',
    'Env variables for the app',
    namespace=PROMETHEUS_PREFIX,
)

requests_buckets = (.01, .05, .1, .25, .5, .75, 1.0, 2.5, 5.0, 7.5, 10.0, 20.0, 30.0, 40.0, 50.0, 60.0, 120.0, INF)

CL_REQUESTS_DURATION = Histogram(
    'cl_requests_duration',
    'Duration of requests to CL API',
    ['endpoint', 'code', 'domain'],
    namespace=PROMETHEUS_PREFIX,
    buckets=requests_buckets,
)

EL_REQUESTS_DURATION = Histogram(
    'el_requests_duration',
    'Duration of requests to EL JSON-RPC API',
    ['endpoint', 'code', 'domain'],
    namespace=PROMETHEUS_PREFIX,
    buckets=requests_buckets,
)

CHECKPOINT_PROCESSING_DURATION = Histogram(
    'checkpoint_processing_duration',
    'Duration of finalized checkpoint processing',
    namespace=PROMETHEUS_PREFIX,
    buckets=requests_buckets,
)

CHECKPOINTS_COUNT = Counter(
    'checkpoints',
    'Total count of processed finalized checkpoints. Success or failure',
    ['status'],
    namespace=PROMETHEUS_PREFIX,
)

VALIDATOR_BALANCE = Gauge(
    'validator_balance',
    'The balance of validator',
    ['validator'],
    namespace=PROMETHEUS_PREFIX,
)

VALIDATOR_MISSED_ATTESTATIONS = Gauge(
    'validator_missed_attestations',
    'Consecutive missed attestations of validator',
    ['validator'],
    namespace=PROMETHEUS_PREFIX,
)

VALIDATOR_MISSED_ATTESTATIONS_TOTAL = Counter(
    'missed_attestations',
    'Missed attestations of validator since the monitor started',
    ['validator'],
    namespace=PROMETHEUS_PREFIX,
)

ENDPOINT_SYNCED = Gauge(
    'endpoint_synced',
    'Sync status of the node endpoint. 1 - synced, 0 - syncing, -1 - unavailable',
    ['endpoint', 'kind'],
    namespace=PROMETHEUS_PREFIX,
)
