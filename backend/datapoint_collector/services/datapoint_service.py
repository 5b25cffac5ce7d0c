"""
Datapoint use cases: collect one datapoint from the producer, query stored ones
"""
import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from datapoint_collector.core.errors import CollectorError, StorageError
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import (collection_duration_seconds,
                                              collection_runs_total,
                                              datapoints_admitted_total)
from datapoint_collector.core.producer_client import ProducerClient
from datapoint_collector.core.wire_decoder import CandidateRecord
from datapoint_collector.services.admission import Admission, AdmissionPolicy
from datapoint_collector.services.datapoint_store import (DataPointCursor,
                                                          DataPointStorage)
from datapoint_collector.services.periodic_trigger import (PeriodicTrigger,
                                                           TriggerContext)
from datapoint_collector.utils.datetime_utils import utc_now

COLLECTOR_NAME = "DataServerCollector"


class DataPointService:
    """Collection pipeline and query entry point"""

    def __init__(
        self,
        storage: DataPointStorage,
        producer: ProducerClient,
        policy: Optional[AdmissionPolicy] = None,
        clock: Callable[[], datetime] = utc_now,
        logger: Optional[logging.Logger] = None,
    ):
        self.storage = storage
        self.producer = producer
        self.policy = policy or AdmissionPolicy()
        self.clock = clock
        self.logger = LoggingConfig.get_component_logger(__name__, "DataPointService", logger=logger)

    async def read(self) -> CandidateRecord:
        """Fetch one datapoint from the producer"""
        return await self.producer.fetch()

    async def admit(self, record: CandidateRecord) -> Admission:
        """Classify a datapoint and write it to the matching table"""
        now = self.clock()
        admission = self.policy.classify(record, now)

        if admission.accepted:
            await run_in_threadpool(self.storage.write_accepted, record, now)
        else:
            self.logger.info(
                "Dropping datapoint",
                extra={
                    "reason": admission.reason.value,
                    "detail": admission.detail,
                    "t": record.timestamp.isoformat(),
                }
            )
            await run_in_threadpool(self.storage.write_rejected, record, now, admission)

        datapoints_admitted_total.labels(
            destination=admission.destination,
            reason=admission.reason.value if admission.reason else "",
        ).inc()
        return admission

    async def collect(self, ctx: Optional[TriggerContext] = None) -> Admission:
        """
        Run one collection: fetch, classify, persist

        Raises:
            TransportError, DecodeError, IncompleteRecordError: producer side
            StorageError: the write failed
        """
        started = time.perf_counter()
        status = "success"
        try:
            record = await self.read()
            if ctx is not None and ctx.cancelled:
                raise asyncio.CancelledError()
            return await self.admit(record)
        except asyncio.CancelledError:
            status = "cancelled"
            raise
        except StorageError:
            status = "storage_error"
            raise
        except CollectorError:
            status = "producer_error"
            raise
        finally:
            collection_runs_total.labels(status=status).inc()
            collection_duration_seconds.observe(time.perf_counter() - started)

    async def query(self, start: Optional[datetime] = None, until: Optional[datetime] = None) -> DataPointCursor:
        """Open a cursor over accepted datapoints, newest first"""
        return await run_in_threadpool(self.storage.query, start, until)


def build_collector(service: DataPointService, interval: float,
                    logger: Optional[logging.Logger] = None) -> PeriodicTrigger:
    """Periodic trigger running ``service.collect`` every ``interval`` seconds"""
    return PeriodicTrigger(COLLECTOR_NAME, service.collect, interval, logger=logger)
