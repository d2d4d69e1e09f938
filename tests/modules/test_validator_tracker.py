from unittest.mock import Mock

import pytest
import responses

from posmoni.db.repository import PersistenceError
from posmoni.db.types import ValidatorRecord
from posmoni.modules.validator_tracker import ValidatorPerformanceTracker, apply_balance, parse_uint
from posmoni.providers.consensus.client import ConsensusClient
from posmoni.providers.consensus.types import ValidatorBalance
from posmoni.providers.exceptions import ProtocolError, TransportError
from posmoni.utils.exception import ParseError
from posmoni.utils.stream import Stream
from tests.doubles import InMemoryRepository
from tests.factory.records import CheckpointFactory, ValidatorRecordFactory

pytestmark = pytest.mark.unit

NODE = 'http://localhost:5052'


def balances(*entries: tuple[str, str]) -> list[ValidatorBalance]:
    return [ValidatorBalance(index=index, balance=balance) for index, balance in entries]


def checkpoints(count: int) -> Stream:
    stream = Stream()
    for _ in range(count):
        stream.put(CheckpointFactory.build())
    stream.close()
    return stream


class TestParseUint:
    @pytest.mark.parametrize('value, expected', [('0', 0), ('32000136946', 32000136946), (str(2**64 - 1), 2**64 - 1)])
    def test_valid(self, value, expected):
        assert parse_uint(value, max_value=2**64 - 1) == expected

    @pytest.mark.parametrize('value', ['', '-1', '+1', ' 1', '1.5', '0x10', 'abc', '١٢', None])
    def test_invalid(self, value):
        with pytest.raises(ParseError):
            parse_uint(value)

    def test_out_of_range(self):
        with pytest.raises(ParseError):
            parse_uint(str(2**64), max_value=2**64 - 1)


class TestApplyBalance:
    def test_decrease_counts_missed_attestation(self):
        record = ValidatorRecordFactory.build(balance=32000136946, missed_atts=2, missed_atts_total=30)

        updated = apply_balance(record, 31000136946)

        assert updated == ValidatorRecord(record.idx, 31000136946, missed_atts=3, missed_atts_total=31)

    @pytest.mark.parametrize('new_balance', [32000136946, 33000136946])
    def test_non_decrease_resets_consecutive(self, new_balance):
        record = ValidatorRecordFactory.build(balance=32000136946, missed_atts=6, missed_atts_total=400)

        updated = apply_balance(record, new_balance)

        assert updated == ValidatorRecord(record.idx, new_balance, missed_atts=0, missed_atts_total=400)

    def test_record_not_mutated(self):
        record = ValidatorRecordFactory.build(balance=10)
        apply_balance(record, 5)
        assert record.balance == 10
        assert record.missed_atts == 0


class TestValidatorPerformanceTracker:
    def test_balance_increase(self):
        repository = InMemoryRepository([ValidatorRecord(idx=1, balance=32000136946)])
        cc = Mock()
        cc.validator_balances.return_value = balances(('1', '34000136946'))

        ValidatorPerformanceTracker(repository, cc).run(checkpoints(1), ['1'])

        assert repository.validator(1) == ValidatorRecord(idx=1, balance=34000136946, missed_atts=0, missed_atts_total=0)
        cc.validator_balances.assert_called_once_with('head', ['1'])

    def test_balance_decrease_after_increase(self):
        repository = InMemoryRepository([ValidatorRecord(idx=1, balance=32000136946)])
        cc = Mock()
        cc.validator_balances.side_effect = [balances(('1', '34000136946')), balances(('1', '32000136946'))]

        ValidatorPerformanceTracker(repository, cc).run(checkpoints(2), ['1'])

        assert repository.validator(1) == ValidatorRecord(idx=1, balance=32000136946, missed_atts=1, missed_atts_total=1)

    def test_several_checkpoints(self):
        repository = InMemoryRepository([
            ValidatorRecord(idx=1, balance=32000136946, missed_atts=6, missed_atts_total=400),
            ValidatorRecord(idx=2, balance=33000136946, missed_atts=2, missed_atts_total=30),
            ValidatorRecord(idx=3, balance=35000136946),
        ])
        cc = Mock()
        cc.validator_balances.side_effect = [
            balances(('1', '33000136946')),
            balances(('2', '31000136946'), ('3', '36000136946')),
            balances(('2', '30000136946')),
        ]

        ValidatorPerformanceTracker(repository, cc).run(checkpoints(3), ['1', '2', '3'])

        assert repository.validator(1) == ValidatorRecord(1, 33000136946, missed_atts=0, missed_atts_total=400)
        assert repository.validator(2) == ValidatorRecord(2, 30000136946, missed_atts=4, missed_atts_total=32)
        assert repository.validator(3) == ValidatorRecord(3, 36000136946, missed_atts=0, missed_atts_total=0)

    def test_new_validator_is_created(self, repository):
        cc = Mock()
        cc.validator_balances.return_value = balances(('7', '32000000000'))

        updated = ValidatorPerformanceTracker(repository, cc).process_checkpoint(CheckpointFactory.build(), ['7'])

        assert updated == [ValidatorRecord(idx=7, balance=32000000000)]
        assert repository.validator(7) == ValidatorRecord(idx=7, balance=32000000000)

    def test_configured_state_id(self, repository):
        cc = Mock()
        cc.validator_balances.return_value = []

        ValidatorPerformanceTracker(repository, cc, state_id='finalized').run(checkpoints(1), ['1', '2'])

        cc.validator_balances.assert_called_once_with('finalized', ['1', '2'])

    @pytest.mark.parametrize('error', [TransportError('down'), ProtocolError('bad body')])
    def test_failed_query_skips_checkpoint(self, error):
        repository = InMemoryRepository([ValidatorRecord(idx=1, balance=32000136946)])
        cc = Mock()
        cc.validator_balances.side_effect = [error, balances(('1', '31000136946'))]

        tracker = ValidatorPerformanceTracker(repository, cc)
        assert tracker.process_checkpoint(CheckpointFactory.build(), ['1']) == []
        assert repository.validator(1) == ValidatorRecord(idx=1, balance=32000136946)

        tracker.process_checkpoint(CheckpointFactory.build(), ['1'])
        assert repository.validator(1) == ValidatorRecord(idx=1, balance=31000136946, missed_atts=1, missed_atts_total=1)

    @pytest.mark.parametrize(
        'entry',
        [('x', '31000000000'), ('1', 'lots'), ('1', '-5'), ('1', str(2**64)), ('', '1')],
    )
    def test_malformed_entry_is_isolated(self, entry):
        stored_1 = ValidatorRecord(idx=1, balance=32000136946, missed_atts=1, missed_atts_total=5)
        stored_2 = ValidatorRecord(idx=2, balance=32000136946)
        repository = InMemoryRepository([stored_1, stored_2])
        cc = Mock()
        cc.validator_balances.return_value = balances(entry, ('2', '31000136946'))

        ValidatorPerformanceTracker(repository, cc).run(checkpoints(1), ['1', '2'])

        assert repository.validator(1) == stored_1
        assert repository.validator(2) == ValidatorRecord(idx=2, balance=31000136946, missed_atts=1, missed_atts_total=1)

    @responses.activate
    @pytest.mark.parametrize('entry', [{'index': '2'}, {'balance': '31000136946'}, {}])
    def test_incomplete_entry_in_response_is_isolated(self, entry):
        responses.get(
            f'{NODE}/eth/v1/beacon/states/head/validator_balances',
            json={'data': [{'index': '1', 'balance': '33000000000'}, entry]},
        )
        stored_2 = ValidatorRecord(idx=2, balance=32000136946)
        repository = InMemoryRepository([ValidatorRecord(idx=1, balance=32000000000), stored_2])
        cc = ConsensusClient(None, 1, 0)
        cc.set_endpoints([NODE])

        updated = ValidatorPerformanceTracker(repository, cc).process_checkpoint(CheckpointFactory.build(), ['1', '2'])

        assert [record.idx for record in updated] == [1]
        assert repository.validator(1) == ValidatorRecord(idx=1, balance=33000000000)
        assert repository.validator(2) == stored_2

    def test_persistence_failure_is_isolated(self):
        repository = InMemoryRepository([
            ValidatorRecord(idx=1, balance=32000136946),
            ValidatorRecord(idx=2, balance=32000136946),
        ])
        update = repository.update

        def failing_update(record):
            if record.idx == 1:
                raise PersistenceError('database is locked')
            update(record)

        repository.update = failing_update
        cc = Mock()
        cc.validator_balances.return_value = balances(('1', '33000000000'), ('2', '33000000000'))

        updated = ValidatorPerformanceTracker(repository, cc).process_checkpoint(CheckpointFactory.build(), ['1', '2'])

        assert [record.idx for record in updated] == [2]
        assert repository.validator(1) == ValidatorRecord(idx=1, balance=32000136946)
        assert repository.validator(2) == ValidatorRecord(idx=2, balance=33000000000)

    def test_entries_processed_in_response_order(self, repository):
        cc = Mock()
        cc.validator_balances.return_value = balances(('3', '1'), ('1', '1'), ('2', '1'))

        updated = ValidatorPerformanceTracker(repository, cc).process_checkpoint(CheckpointFactory.build(), ['1', '2', '3'])

        assert [record.idx for record in updated] == [3, 1, 2]

    def test_run_stops_when_stream_closed(self, repository):
        cc = Mock()
        cc.validator_balances.return_value = []

        ValidatorPerformanceTracker(repository, cc).run(checkpoints(0), ['1'])

        cc.validator_balances.assert_not_called()
