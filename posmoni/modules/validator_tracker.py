import logging
from typing import Iterable, Sequence

from posmoni.constants import DEFAULT_BALANCES_STATE_ID, UINT64_MAX
from posmoni.db.repository import PersistenceError, Repository
from posmoni.db.types import ValidatorRecord
from posmoni.metrics.healthcheck_server import pulse
from posmoni.metrics.prometheus.basic import (
    CHECKPOINT_PROCESSING_DURATION,
    CHECKPOINTS_COUNT,
    Status,
    VALIDATOR_BALANCE,
    VALIDATOR_MISSED_ATTESTATIONS,
    VALIDATOR_MISSED_ATTESTATIONS_TOTAL,
)
from posmoni.providers.consensus.types import ValidatorBalance
from posmoni.providers.exceptions import NoHostsProvided, ProtocolError, TransportError
from posmoni.providers.interfaces import ConsensusAPI
from posmoni.providers.subscribe import Checkpoint
from posmoni.types import Gwei, ValidatorIndex
from posmoni.utils.dataclass import DecodeToDataclassException
from posmoni.utils.exception import ParseError

logger = logging.getLogger(__name__)


def parse_uint(value: str, max_value: int | None = None) -> int:
    """Decimal string without sign or spaces. `int()` alone accepts both."""
    if not isinstance(value, str) or not value.isascii() or not value.isdigit():
        raise ParseError(f'Not an unsigned integer: {value!r}')

    number = int(value)
    if max_value is not None and number > max_value:
        raise ParseError(f'Value {value} is out of range')

    return number


def apply_balance(record: ValidatorRecord, balance: Gwei) -> ValidatorRecord:
    """
    Balance decrease counts as a missed attestation.
    Any non-decrease resets the consecutive counter and keeps the total.
    """
    if balance < record.balance:
        return ValidatorRecord(
            idx=record.idx,
            balance=balance,
            missed_atts=record.missed_atts + 1,
            missed_atts_total=record.missed_atts_total + 1,
        )

    return ValidatorRecord(
        idx=record.idx,
        balance=balance,
        missed_atts=0,
        missed_atts_total=record.missed_atts_total,
    )


class ValidatorPerformanceTracker:
    """
    Single consumer of the finalized checkpoints stream.

    On every checkpoint the balances of all tracked validators are requested in one batch
    and each validator record is updated on its own. A bad entry or a failed write affects
    only that validator.
    """

    def __init__(self, repository: Repository, cc: ConsensusAPI, state_id: str = DEFAULT_BALANCES_STATE_ID):
        self.repository = repository
        self.cc = cc
        self.state_id = state_id

    def run(self, checkpoints: Iterable[Checkpoint], validator_idxs: Sequence[str]) -> None:
        """Blocks until the checkpoints stream is exhausted"""
        logger.info({'msg': 'Validator tracker started.', 'validators': len(validator_idxs)})

        for checkpoint in checkpoints:
            self.process_checkpoint(checkpoint, validator_idxs)

        logger.info({'msg': 'Validator tracker stopped.'})

    @CHECKPOINT_PROCESSING_DURATION.time()
    def process_checkpoint(self, checkpoint: Checkpoint, validator_idxs: Sequence[str]) -> list[ValidatorRecord]:
        """Returns records updated for this checkpoint"""
        logger.info({'msg': 'Process checkpoint.', 'epoch': checkpoint.epoch, 'state_id': self.state_id})

        try:
            balances = self.cc.validator_balances(self.state_id, validator_idxs)
        except (TransportError, ProtocolError, NoHostsProvided, DecodeToDataclassException) as error:
            logger.error({'msg': 'Failed to fetch validator balances. Skip checkpoint.', 'error': str(error)})
            CHECKPOINTS_COUNT.labels(Status.FAILURE.value).inc()
            return []

        updated = []
        for entry in balances:
            if (record := self._process_entry(entry)) is not None:
                updated.append(record)

        CHECKPOINTS_COUNT.labels(Status.SUCCESS.value).inc()
        logger.info({'msg': 'Checkpoint processed.', 'epoch': checkpoint.epoch, 'updated': len(updated)})
        pulse()
        return updated

    def _process_entry(self, entry: ValidatorBalance) -> ValidatorRecord | None:
        try:
            idx = ValidatorIndex(parse_uint(entry.index))
            balance = Gwei(parse_uint(entry.balance, max_value=UINT64_MAX))
        except ParseError as error:
            logger.error({'msg': 'Skip malformed balance entry.', 'entry': entry, 'error': str(error)})
            return None

        try:
            stored = self.repository.first_or_create(ValidatorRecord(idx=idx, balance=balance))
            record = apply_balance(stored, balance)
            self.repository.update(record)
        except PersistenceError as error:
            logger.error({'msg': 'Failed to persist validator.', 'validator': idx, 'error': str(error)})
            return None

        self._report(record, stored)
        return record

    @staticmethod
    def _report(record: ValidatorRecord, previous: ValidatorRecord) -> None:
        validator = str(record.idx)
        VALIDATOR_BALANCE.labels(validator).set(record.balance)
        VALIDATOR_MISSED_ATTESTATIONS.labels(validator).set(record.missed_atts)

        if record.missed_atts_total > previous.missed_atts_total:
            VALIDATOR_MISSED_ATTESTATIONS_TOTAL.labels(validator).inc()
            logger.warning({
                'msg': 'Validator balance decreased.',
                'validator': record.idx,
                'balance': record.balance,
                'previous_balance': previous.balance,
                'missed_atts': record.missed_atts,
            })
