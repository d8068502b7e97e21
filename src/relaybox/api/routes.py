import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from relaybox.api.dependencies import get_relay
from relaybox.api.rate_limit import rate_limit_client
from relaybox.config import settings
from relaybox.models.schemas import NO_DATA, OK, ErrorResponse, HealthResponse, StatusResponse, SystemStats
from relaybox.relay import InvalidPayloadError, RelayService
from relaybox.relay.service import KEY_FIELD, validate_key
from relaybox.services.system_stats import collect_system_stats

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(rate_limit_client)])

_DISCONNECTED = object()

_BAD_REQUEST = {400: {"model": ErrorResponse}}


@router.get("/health", response_model=HealthResponse)
async def health(relay: RelayService = Depends(get_relay)) -> HealthResponse:
    return HealthResponse(relay=await relay.stats())


@router.get("/systemStats", response_model=SystemStats)
async def system_stats() -> SystemStats:
    return collect_system_stats()


@router.get("/getData", responses=_BAD_REQUEST)
async def get_data(
    request: Request,
    localip: str = "",
    relay: RelayService = Depends(get_relay),
) -> Any:
    """Long-poll for the record waiting for a client key."""
    validate_key(localip)
    logger.debug("Client polling for data with IP %s", localip)

    record = await _hold_open(request, relay.poll(localip))
    if record is _DISCONNECTED:
        return Response(status_code=204)
    return record if record is not None else NO_DATA


@router.post("/data", response_model=StatusResponse, responses=_BAD_REQUEST)
async def post_data(
    request: Request,
    relay: RelayService = Depends(get_relay),
) -> StatusResponse:
    """Accept a record from a producer and relay it to its client key."""
    record = await _parse_record(request)
    logger.info("Received data for client %s", record.get(KEY_FIELD))
    await relay.submit(record)
    return OK


@router.get("/getFrontendData")
async def get_frontend_data(
    request: Request,
    relay: RelayService = Depends(get_relay),
) -> Any:
    """Long-poll for the latest record on the display feed."""
    record = await _hold_open(request, relay.frontend.poll())
    if record is _DISCONNECTED:
        return Response(status_code=204)
    return record if record is not None else NO_DATA


async def _parse_record(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Error parsing data from %s", request.client.host if request.client else "unknown")
        raise InvalidPayloadError()
    if not isinstance(body, dict):
        raise InvalidPayloadError()
    return body


async def _hold_open(request: Request, poll: Awaitable[Any]) -> Any:
    """Await a held poll, abandoning it if the client goes away.

    Returns the poll result, or _DISCONNECTED if the client disconnected first.
    """
    task = asyncio.ensure_future(poll)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=settings.disconnect_check_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.debug("Client disconnected during poll on %s", request.url.path)
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                return _DISCONNECTED
    finally:
        if not task.done():
            task.cancel()
