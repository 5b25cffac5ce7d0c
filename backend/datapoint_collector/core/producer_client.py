"""
HTTP client fetching one datapoint per call from the producer (data server)
"""
import logging
import time
from typing import Optional

import httpx

from datapoint_collector.core.errors import (DecodeError, IncompleteRecordError,
                                             TransportError, UnexpectedStatusError)
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.core.metrics import producer_request_duration_seconds
from datapoint_collector.core.wire_decoder import CandidateRecord, decode

DEFAULT_TIMEOUT_SECONDS = 10.0


class ProducerClient:
    """
    Client for the producer endpoint

    Each ``fetch()`` performs exactly one GET. There is no retry here: a failed
    fetch fails the current collection run only.
    """

    def __init__(
        self,
        url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(
                max_keepalive_connections=2,
                max_connections=4,
            )
        )
        self.logger = LoggingConfig.get_component_logger(
            __name__, "ProducerClient", logger=logger, url=url
        )

    async def fetch(self) -> CandidateRecord:
        """
        Fetch and decode one datapoint

        Raises:
            TransportError: network failure, timeout or non-2xx status
            DecodeError: malformed body
            IncompleteRecordError: body misses a required field
        """
        started = time.perf_counter()
        outcome = "ok"
        try:
            async with self._client.stream("GET", self.url, timeout=self.timeout) as response:
                if not response.is_success:
                    outcome = "status"
                    raise UnexpectedStatusError(response.status_code)
                body = await response.aread()

            try:
                record = decode(body)
            except DecodeError as e:
                outcome = "decode"
                raise DecodeError(f"failed to decode datapoint body: {e}", field=e.field) from e
            except IncompleteRecordError as e:
                outcome = "decode"
                raise IncompleteRecordError(e.field, f"invalid datapoint received: {e}") from e
        except httpx.HTTPError as e:
            outcome = "transport"
            raise TransportError(f"failed to perform request to {self.url}: {e}") from e
        finally:
            producer_request_duration_seconds.labels(outcome=outcome).observe(
                time.perf_counter() - started
            )

        self.logger.debug(
            "Datapoint fetched",
            extra={"t": record.timestamp.isoformat(), "tags": record.tags}
        )
        return record

    async def aclose(self):
        """Close the underlying HTTP client if this instance created it"""
        if self._owns_client:
            await self._client.aclose()
