import logging
import threading
from dataclasses import dataclass
from typing import Sequence

from posmoni.metrics.healthcheck_server import pulse
from posmoni.metrics.prometheus.basic import ENDPOINT_SYNCED
from posmoni.providers.consensus.types import BeaconSyncingStatus
from posmoni.providers.execution.types import ExecutionSyncingStatus
from posmoni.providers.interfaces import ConsensusAPI, ExecutionAPI
from posmoni.types import EndpointKind
from posmoni.utils.stream import Stream
from posmoni.utils.url import domain

logger = logging.getLogger(__name__)


@dataclass
class EndpointSyncStatus:
    endpoint: str
    synced: bool = False
    error: Exception | None = None

    @classmethod
    def from_status(cls, status: BeaconSyncingStatus | ExecutionSyncingStatus) -> 'EndpointSyncStatus':
        if status.error is not None:
            return cls(endpoint=status.endpoint, error=status.error)
        return cls(endpoint=status.endpoint, synced=not status.is_syncing)


class SyncTracker:
    """
    Periodic sync check of consensus and execution endpoints.

    idle -> ticking -> (ticking | stopped). First tick runs right away, then every `interval`.
    Cancel is observed between ticks only, a running tick always completes.
    """

    def __init__(self, cc: ConsensusAPI, ec: ExecutionAPI):
        self.cc = cc
        self.ec = ec

    def track(
        self,
        cancel: threading.Event,
        consensus: Sequence[str],
        execution: Sequence[str],
        interval: float,
    ) -> Stream[EndpointSyncStatus]:
        """
        Returns an unbounded stream, so a slow consumer never blocks ticking.
        Stream is closed once the loop stops.
        """
        stream: Stream[EndpointSyncStatus] = Stream()

        threading.Thread(
            target=self._loop,
            args=(cancel, consensus, execution, interval, stream),
            daemon=True,
            name='sync-tracker',
        ).start()

        return stream

    def _loop(
        self,
        cancel: threading.Event,
        consensus: Sequence[str],
        execution: Sequence[str],
        interval: float,
        stream: Stream[EndpointSyncStatus],
    ) -> None:
        logger.info({'msg': 'Sync tracker started.', 'interval': interval})
        try:
            wait = 0.0
            while not cancel.wait(wait):
                for event in self.tick(consensus, execution):
                    stream.put(event)
                wait = interval
        finally:
            stream.close()
            logger.info({'msg': 'Sync tracker stopped.'})

    def tick(self, consensus: Sequence[str], execution: Sequence[str]) -> list[EndpointSyncStatus]:
        """One event per endpoint, consensus endpoints first"""
        events = []

        for status in self.cc.sync_status(consensus) or []:
            events.append(self._report(EndpointSyncStatus.from_status(status), EndpointKind.CONSENSUS))

        for status in self.ec.sync_status(execution) or []:
            events.append(self._report(EndpointSyncStatus.from_status(status), EndpointKind.EXECUTION))

        pulse()
        return events

    @staticmethod
    def _report(event: EndpointSyncStatus, kind: EndpointKind) -> EndpointSyncStatus:
        # Node URIs may carry API keys, only the host goes to metrics and logs
        host = domain(event.endpoint)
        if event.error is not None:
            ENDPOINT_SYNCED.labels(host, kind.value).set(-1)
            logger.warning({'msg': 'Endpoint sync status unavailable.', 'domain': host, 'error': str(event.error)})
        else:
            ENDPOINT_SYNCED.labels(host, kind.value).set(int(event.synced))
            logger.debug({'msg': 'Endpoint sync status.', 'domain': host, 'synced': event.synced})
        return event
