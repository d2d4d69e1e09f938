import os
from typing import Final

from posmoni.constants import DEFAULT_BALANCES_STATE_ID
from posmoni.types import MonitorModule
from posmoni.utils.env import list_from_env
from posmoni.utils.exception import ConfigurationError

# - Providers -
CONSENSUS_CLIENT_URI: Final = list_from_env('PM_CONSENSUS')
EXECUTION_CLIENT_URI: Final = list_from_env('PM_EXECUTION')

# - Validators -
VALIDATORS: Final = list_from_env('PM_VALIDATORS')
# Endpoints returning a json list of validator indexes to merge with PM_VALIDATORS
VALIDATORS_EXTERNAL_HTTP: Final = list_from_env('PM_VALIDATORS_EXTERNAL_HTTP')

# - App specific -
DB_PATH: Final = os.getenv('PM_DB_PATH', 'eth2_monitor.db')
DB_CONNECTION_TIMEOUT: Final = float(os.getenv('PM_DB_CONNECTION_TIMEOUT', 5))
BALANCES_STATE_ID: Final = os.getenv('PM_BALANCES_STATE_ID', DEFAULT_BALANCES_STATE_ID)
TRACK_SYNC_INTERVAL_IN_SECONDS: Final = float(os.getenv('PM_TRACK_SYNC_INTERVAL_IN_SECONDS', 60))

# HTTP variables
HTTP_REQUEST_TIMEOUT_CONSENSUS: Final = float(os.getenv('PM_HTTP_REQUEST_TIMEOUT_CONSENSUS', 60))
HTTP_REQUEST_RETRY_DURATION_CONSENSUS: Final = float(os.getenv('PM_HTTP_REQUEST_RETRY_DURATION_CONSENSUS', 60))

HTTP_REQUEST_TIMEOUT_EXECUTION: Final = float(os.getenv('PM_HTTP_REQUEST_TIMEOUT_EXECUTION', 30))
HTTP_REQUEST_RETRY_DURATION_EXECUTION: Final = float(os.getenv('PM_HTTP_REQUEST_RETRY_DURATION_EXECUTION', 1))

HTTP_REQUEST_TIMEOUT_VALIDATORS_EXTERNAL: Final = float(os.getenv('PM_HTTP_REQUEST_TIMEOUT_VALIDATORS_EXTERNAL', 30))

# Event stream. Read timeout forces a reconnect on a stalled stream.
SSE_READ_TIMEOUT_IN_SECONDS: Final = float(os.getenv('PM_SSE_READ_TIMEOUT_IN_SECONDS', 15 * 60))
SSE_RECONNECT_DELAY_IN_SECONDS: Final = float(os.getenv('PM_SSE_RECONNECT_DELAY_IN_SECONDS', 5))

# - Logging -
LOG_LEVEL: Final = os.getenv('PM_LOG_LEVEL', 'INFO').upper()

# - Metrics -
PROMETHEUS_PORT: Final = int(os.getenv('PROMETHEUS_PORT', 9000))
PROMETHEUS_PREFIX: Final = os.getenv('PROMETHEUS_PREFIX', 'posmoni')

HEALTHCHECK_SERVER_PORT: Final = int(os.getenv('HEALTHCHECK_SERVER_PORT', 9010))

MAX_CYCLE_LIFETIME_IN_SECONDS: Final = int(os.getenv('MAX_CYCLE_LIFETIME_IN_SECONDS', 3000))


def check_required_variables(module: MonitorModule) -> list[str]:
    errors = []
    if not CONSENSUS_CLIENT_URI:
        errors.append('PM_CONSENSUS')

    if module is MonitorModule.MONITOR and not (VALIDATORS or VALIDATORS_EXTERNAL_HTTP):
        errors.append('PM_VALIDATORS')

    if module is MonitorModule.TRACK_SYNC and not EXECUTION_CLIENT_URI:
        errors.append('PM_EXECUTION')

    return errors


def raise_from_errors(errors):
    if errors:
        raise ConfigurationError("The following variables are required: " + ", ".join(errors))


# All non-private env variables to the logs in main
PUBLIC_ENV_VARS = {
    key: str(value)
    for key, value in {
        'PM_VALIDATORS': VALIDATORS,
        'PM_VALIDATORS_EXTERNAL_HTTP': VALIDATORS_EXTERNAL_HTTP,
        'PM_DB_PATH': DB_PATH,
        'PM_DB_CONNECTION_TIMEOUT': DB_CONNECTION_TIMEOUT,
        'PM_BALANCES_STATE_ID': BALANCES_STATE_ID,
        'PM_TRACK_SYNC_INTERVAL_IN_SECONDS': TRACK_SYNC_INTERVAL_IN_SECONDS,
        'PM_HTTP_REQUEST_TIMEOUT_CONSENSUS': HTTP_REQUEST_TIMEOUT_CONSENSUS,
        'PM_HTTP_REQUEST_RETRY_DURATION_CONSENSUS': HTTP_REQUEST_RETRY_DURATION_CONSENSUS,
        'PM_HTTP_REQUEST_TIMEOUT_EXECUTION': HTTP_REQUEST_TIMEOUT_EXECUTION,
        'PM_HTTP_REQUEST_RETRY_DURATION_EXECUTION': HTTP_REQUEST_RETRY_DURATION_EXECUTION,
        'PM_HTTP_REQUEST_TIMEOUT_VALIDATORS_EXTERNAL': HTTP_REQUEST_TIMEOUT_VALIDATORS_EXTERNAL,
        'PM_SSE_READ_TIMEOUT_IN_SECONDS': SSE_READ_TIMEOUT_IN_SECONDS,
        'PM_SSE_RECONNECT_DELAY_IN_SECONDS': SSE_RECONNECT_DELAY_IN_SECONDS,
        'PM_LOG_LEVEL': LOG_LEVEL,
        'PROMETHEUS_PORT': PROMETHEUS_PORT,
        'PROMETHEUS_PREFIX': PROMETHEUS_PREFIX,
        'HEALTHCHECK_SERVER_PORT': HEALTHCHECK_SERVER_PORT,
        'MAX_CYCLE_LIFETIME_IN_SECONDS': MAX_CYCLE_LIFETIME_IN_SECONDS,
    }.items()
}

# Node URIs often carry API keys
PRIVATE_ENV_VARS = {
    'PM_CONSENSUS': CONSENSUS_CLIENT_URI,
    'PM_EXECUTION': EXECUTION_CLIENT_URI,
}

assert not set(PRIVATE_ENV_VARS.keys()).intersection(set(PUBLIC_ENV_VARS.keys()))
