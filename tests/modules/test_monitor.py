import threading
from unittest.mock import Mock

import pytest

from posmoni.config import MonitorConfig
from posmoni.db.repository import EmptyRepository, PersistenceError, SQLiteRepository
from posmoni.db.types import ValidatorRecord
from posmoni.modules.monitor import Eth2Monitor
from posmoni.modules.sync_tracker import EndpointSyncStatus
from posmoni.providers.consensus.types import BeaconSyncingStatus, ValidatorBalance
from posmoni.providers.execution.types import ExecutionSyncingStatus
from posmoni.providers.subscribe import SubscribeOptions
from posmoni.utils.exception import ConfigurationError
from tests.doubles import IdleSubscriber, InMemoryRepository
from tests.factory.records import CheckpointFactory

pytestmark = pytest.mark.unit

CONSENSUS = 'http://localhost:5052'
EXECUTION = 'http://localhost:8545'


@pytest.fixture()
def config() -> MonitorConfig:
    return MonitorConfig(consensus_endpoints=(CONSENSUS,), execution_endpoints=(EXECUTION,), validators=('1',))


def make_monitor(config, repository=None, cc=None, ec=None, subscriber=None) -> Eth2Monitor:
    return Eth2Monitor(
        config=config,
        repository=repository or InMemoryRepository(),
        cc=cc or Mock(),
        ec=ec or Mock(),
        subscribe_options=SubscribeOptions(endpoints=(), subscriber=subscriber or IdleSubscriber()),
    )


class TestInit:
    def test_consensus_required(self):
        with pytest.raises(ConfigurationError):
            make_monitor(MonitorConfig(consensus_endpoints=()))

    def test_endpoints_are_set(self, config):
        cc = Mock()
        repository = InMemoryRepository()

        monitor = make_monitor(config, repository=repository, cc=cc)

        cc.set_endpoints.assert_called_once_with((CONSENSUS,))
        assert monitor.subscribe_options.endpoints == (CONSENSUS,)
        assert repository.migrated

    def test_migration_failure_is_fatal(self, config):
        repository = InMemoryRepository()
        repository.migrate = Mock(side_effect=PersistenceError('disk I/O error'))

        with pytest.raises(PersistenceError):
            make_monitor(config, repository=repository)

    def test_default(self, config, tmp_path):
        monitor = Eth2Monitor.default(
            MonitorConfig(consensus_endpoints=(CONSENSUS,), validators=('1',), db_path=str(tmp_path / 'monitor.db'))
        )
        assert isinstance(monitor.repository, SQLiteRepository)
        assert monitor.cc.get_all_providers() == [CONSENSUS]

    def test_default_without_validators(self):
        monitor = Eth2Monitor.default(MonitorConfig(consensus_endpoints=(CONSENSUS,)))
        assert isinstance(monitor.repository, EmptyRepository)


class TestMonitor:
    def test_validators_required(self):
        monitor = make_monitor(MonitorConfig(consensus_endpoints=(CONSENSUS,)))

        with pytest.raises(ConfigurationError):
            monitor.monitor()

    def test_checkpoints_update_validators(self, config):
        processed = threading.Event()
        checkpoint = CheckpointFactory.build()

        class OneCheckpointSubscriber(IdleSubscriber):
            def listen(self, url, stream, cancel):
                stream.put(checkpoint)
                super().listen(url, stream, cancel)

        def validator_balances(state_id, validator_idxs):
            processed.set()
            return [ValidatorBalance(index='1', balance='31000000000')]

        cc = Mock()
        cc.validator_balances.side_effect = validator_balances
        repository = InMemoryRepository([ValidatorRecord(idx=1, balance=32000000000)])
        subscriber = OneCheckpointSubscriber()

        monitor = make_monitor(config, repository=repository, cc=cc, subscriber=subscriber)
        [cancel] = monitor.monitor()

        assert processed.wait(5)
        assert subscriber.wait_for_listeners(1)
        cancel.set()

        assert subscriber.urls == [f'{CONSENSUS}/eth/v1/events?topics=finalized_checkpoint']
        cc.validator_balances.assert_called_once_with('head', ['1'])


class TestTrackSync:
    def test_track_sync(self, config):
        cc, ec = Mock(), Mock()
        cc.sync_status.return_value = [BeaconSyncingStatus(endpoint=CONSENSUS, is_syncing=False)]
        ec.sync_status.return_value = [ExecutionSyncingStatus(endpoint=EXECUTION, is_syncing=True)]
        monitor = make_monitor(config, cc=cc, ec=ec)
        cancel = threading.Event()

        stream = monitor.track_sync(cancel, [CONSENSUS], [EXECUTION], 0.001)

        assert [stream.get(timeout=5), stream.get(timeout=5)] == [
            EndpointSyncStatus(endpoint=CONSENSUS, synced=True),
            EndpointSyncStatus(endpoint=EXECUTION, synced=False),
        ]
        cancel.set()
        list(stream)
        assert stream.closed
