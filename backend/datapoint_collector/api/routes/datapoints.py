"""
Datapoint query endpoint
"""
from typing import AsyncIterator, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import iterate_in_threadpool

from datapoint_collector.core.errors import RangeValidationError
from datapoint_collector.core.logging_config import LoggingConfig
from datapoint_collector.services.datapoint_service import DataPointService
from datapoint_collector.services.query_streamer import iter_json_array
from datapoint_collector.utils.datetime_utils import parse_optional_rfc3339

logger = LoggingConfig.get_logger(__name__)
router = APIRouter(tags=["datapoints"])


class DataPointModel(BaseModel):
    """One item of the streamed array"""
    time: str
    value: float


class ErrorResponse(BaseModel):
    """Error envelope"""
    message: str


def get_datapoint_service(request: Request) -> DataPointService:
    """Dependency returning the service built at startup"""
    return request.app.state.datapoint_service


def _parse_bound(name: str, value: Optional[str]):
    try:
        return parse_optional_rfc3339(value)
    except ValueError as e:
        raise RangeValidationError(f"failed to parse {name} time: {e}") from e


async def _stream_body(chunks) -> AsyncIterator[bytes]:
    try:
        async for chunk in iterate_in_threadpool(chunks):
            yield chunk
    finally:
        # runs the generator's cleanup, which closes the cursor
        chunks.close()


@router.get(
    "/data-point",
    response_model=List[DataPointModel],
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def query_datapoints(
    start: Optional[str] = Query(default=None, description="Inclusive lower bound (RFC 3339)"),
    until: Optional[str] = Query(default=None, description="Inclusive upper bound (RFC 3339)"),
    service: DataPointService = Depends(get_datapoint_service),
):
    """
    Stream accepted datapoints, newest first

    Returns:
        JSON array of {"time": RFC 3339, "value": number}
    """
    start_at = _parse_bound("start", start)
    until_at = _parse_bound("until", until)

    # StorageError raised here becomes a 500 before any byte is sent
    cursor = await service.query(start_at, until_at)

    chunks = iter_json_array(cursor, logger=logger)
    return StreamingResponse(_stream_body(chunks), media_type="application/json")
