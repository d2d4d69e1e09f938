import logging
import threading
from dataclasses import replace
from typing import Self, Sequence

from posmoni.config import MonitorConfig
from posmoni.db.repository import EmptyRepository, PersistenceError, Repository, SQLiteRepository
from posmoni.modules.sync_tracker import EndpointSyncStatus, SyncTracker
from posmoni.modules.validator_tracker import ValidatorPerformanceTracker
from posmoni.providers.consensus.client import ConsensusClient
from posmoni.providers.execution.client import ExecutionClient
from posmoni.providers.interfaces import ConsensusAPI, ExecutionAPI
from posmoni.providers.retry import RetryingTransport
from posmoni.providers.subscribe import SSESubscriber, SubscribeOptions, subscribe
from posmoni.utils.exception import ConfigurationError
from posmoni.utils.stream import Stream

logger = logging.getLogger(__name__)


class Eth2Monitor:
    """
    Entry point of both subsystems.

    `monitor` follows finalized checkpoints and tracks validators performance.
    `track_sync` periodically reports sync status of every endpoint.
    Each of them owns its cancel event, stopping one does not stop the other.
    """

    def __init__(
        self,
        config: MonitorConfig,
        repository: Repository,
        cc: ConsensusAPI,
        ec: ExecutionAPI,
        subscribe_options: SubscribeOptions,
    ):
        if not config.consensus_endpoints:
            raise ConfigurationError('At least one consensus endpoint is required')

        self.config = config
        self.repository = repository
        self.cc = cc
        self.ec = ec

        self.cc.set_endpoints(config.consensus_endpoints)
        self.subscribe_options = replace(subscribe_options, endpoints=tuple(config.consensus_endpoints))

        try:
            self.repository.migrate()
        except PersistenceError as error:
            logger.error({'msg': 'Database migration failed.', 'error': str(error)})
            raise

    @classmethod
    def default(cls, config: MonitorConfig) -> Self:
        """Monitor wired with real clients. Without validators no database is created."""
        repository = (
            SQLiteRepository(config.db_path, config.db_connection_timeout)
            if config.validators
            else EmptyRepository()
        )
        subscriber = SSESubscriber(
            RetryingTransport(config.consensus_retry_duration, request_timeout=config.consensus_request_timeout),
            reconnect_delay=config.sse_reconnect_delay,
            read_timeout=config.sse_read_timeout,
        )
        return cls(
            config=config,
            repository=repository,
            cc=ConsensusClient(None, config.consensus_request_timeout, config.consensus_retry_duration),
            ec=ExecutionClient(config.execution_request_timeout, config.execution_retry_duration),
            subscribe_options=SubscribeOptions(endpoints=(), subscriber=subscriber),
        )

    def monitor(self) -> list[threading.Event]:
        """
        Start checkpoints subscription and validator tracker.
        Returns cancel events of the started subsystems, set them to stop.
        """
        if not self.config.validators:
            raise ConfigurationError('At least one validator is required to monitor')

        cancel = threading.Event()
        checkpoints = subscribe(cancel, self.subscribe_options)

        tracker = ValidatorPerformanceTracker(self.repository, self.cc, self.config.balances_state_id)
        threading.Thread(
            target=tracker.run,
            args=(checkpoints, list(self.config.validators)),
            daemon=True,
            name='validator-tracker',
        ).start()

        logger.info({'msg': 'Monitor started.', 'validators': len(self.config.validators)})
        return [cancel]

    def track_sync(
        self,
        cancel: threading.Event,
        consensus: Sequence[str],
        execution: Sequence[str],
        interval: float,
    ) -> Stream[EndpointSyncStatus]:
        return SyncTracker(self.cc, self.ec).track(cancel, consensus, execution, interval)
