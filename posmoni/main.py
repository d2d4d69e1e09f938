import signal
import sys
import threading
import time

from prometheus_client import start_http_server

from posmoni import variables
from posmoni.config import MonitorConfig
from posmoni.metrics.healthcheck_server import start_pulse_server
from posmoni.metrics.logging import logging
from posmoni.metrics.prometheus.basic import ENV_VARIABLES_INFO
from posmoni.modules.monitor import Eth2Monitor
from posmoni.modules.sync_tracker import EndpointSyncStatus
from posmoni.types import MonitorModule
from posmoni.utils.stream import Stream
from posmoni.utils.url import domain

logger = logging.getLogger(__name__)

# Time for listeners to notice cancel before the process exits
SHUTDOWN_GRACE_PERIOD_IN_SECONDS = 2


def main(module_name: MonitorModule):
    logger.info({
        'msg': 'Monitor startup.',
        'variables': {
            'module': module_name,
            **variables.PUBLIC_ENV_VARS,
        },
    })
    ENV_VARIABLES_INFO.info(variables.PUBLIC_ENV_VARS)

    logger.info({'msg': f'Start healthcheck server for Docker container on port {variables.HEALTHCHECK_SERVER_PORT}'})
    start_pulse_server()

    logger.info({'msg': f'Start http server with prometheus metrics on port {variables.PROMETHEUS_PORT}'})
    start_http_server(variables.PROMETHEUS_PORT)

    logger.info({'msg': 'Build config.'})
    config = MonitorConfig.from_variables()

    logger.info({'msg': 'Initialize monitor.'})
    monitor = Eth2Monitor.default(config)

    if module_name == MonitorModule.MONITOR:
        logger.info({'msg': 'Start validators monitoring.', 'validators': len(config.validators)})
        cancels = monitor.monitor()
    elif module_name == MonitorModule.TRACK_SYNC:
        logger.info({'msg': 'Start endpoints sync tracking.'})
        cancel = threading.Event()
        events = monitor.track_sync(
            cancel,
            config.consensus_endpoints,
            config.execution_endpoints,
            config.track_sync_interval,
        )
        threading.Thread(target=log_sync_events, args=(events,), daemon=True, name='sync-events').start()
        cancels = [cancel]
    else:
        raise ValueError(f'Unexpected arg: {module_name=}.')

    stop = threading.Event()

    def shutdown(signum, _frame):
        logger.info({'msg': 'Shutdown signal received.', 'signal': signal.Signals(signum).name})
        for event in cancels:
            event.set()
        stop.set()

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    # Event.wait without timeout is not interrupted by signals on every platform
    while not stop.wait(1):
        pass

    time.sleep(SHUTDOWN_GRACE_PERIOD_IN_SECONDS)
    logger.info({'msg': 'Monitor stopped.'})


def log_sync_events(events: Stream[EndpointSyncStatus]) -> None:
    for event in events:
        host = domain(event.endpoint)
        if event.error is not None:
            logger.error({'msg': 'Endpoint sync status unavailable.', 'domain': host, 'error': str(event.error)})
        else:
            logger.info({'msg': 'Endpoint sync status.', 'domain': host, 'synced': event.synced})


if __name__ == '__main__':
    module_name_arg = sys.argv[-1]
    if module_name_arg not in MonitorModule:
        msg = f'Last arg should be one of {[str(item) for item in MonitorModule]}, received {module_name_arg}.'
        logger.error({'msg': msg})
        raise ValueError(msg)

    module = MonitorModule(module_name_arg)

    errors = variables.check_required_variables(module)
    variables.raise_from_errors(errors)
    main(module)
