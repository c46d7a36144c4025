"""HTTP endpoints for streamed lending path discovery and loan relations."""
import asyncio
import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.responses import StreamingResponse

from ..exceptions import InvalidArgumentError, RailaError
from ..pathfinding.path_models import Address
from ..pathfinding.path_stream import LendingPathStream, SearchState, StreamListener

logger = logging.getLogger(__name__)

router = APIRouter()

Event = Tuple[str, Dict[str, Any]]


def _services(request: Request):
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services


def _parse_address(value: str) -> Address:
    try:
        return Address(value)
    except InvalidArgumentError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _encode(kind: str, payload: Dict[str, Any]) -> str:
    return json.dumps({"event": kind, **payload}) + "\n"


@router.get("/lending-paths/{borrower}")
async def stream_lending_paths(
    borrower: str,
    request: Request,
    max_depth: Optional[int] = Query(default=None, ge=1, le=6)
) -> StreamingResponse:
    """
    Stream lending paths for `borrower` as newline-delimited JSON events.

    Events: `depth` when a depth starts, `path` for each discovered path,
    `enriched` when profile metadata arrives for a path, then a final `done`
    or `error`.
    """
    services = _services(request)
    borrower_address = _parse_address(borrower)

    queue: "asyncio.Queue[Event]" = asyncio.Queue()
    listener = StreamListener(
        on_path=lambda p: queue.put_nowait(("path", p.to_dict())),
        on_path_updated=lambda p: queue.put_nowait(("enriched", p.to_dict())),
        on_depth=lambda d: queue.put_nowait(("depth", {"depth": d}))
    )
    stream = LendingPathStream(
        services.path_finder,
        services.profile_source,
        listener=listener,
        max_depth=max_depth or services.max_depth,
        max_concurrent_lookups=services.profile_lookup_concurrency
    )
    session = stream.start(borrower_address)

    async def finish() -> None:
        try:
            await session.drain()
        except Exception as e:
            logger.exception(f"Lending path stream for {borrower_address.short()} aborted")
            queue.put_nowait(("error", {"kind": type(e).__name__, "message": str(e)}))
            return

        if session.state == SearchState.FAILED:
            queue.put_nowait(("error", {
                "kind": type(session.error).__name__,
                "message": str(session.error)
            }))
        else:
            queue.put_nowait(("done", {
                "paths": len(session.paths),
                "no_paths_found": session.no_paths_found
            }))

    async def events() -> AsyncIterator[str]:
        finisher = asyncio.create_task(finish())
        try:
            while True:
                kind, payload = await queue.get()
                yield _encode(kind, payload)
                if kind in ("done", "error"):
                    break
        finally:
            stream.cancel()
            await asyncio.gather(finisher, return_exceptions=True)

    return StreamingResponse(events(), media_type="application/x-ndjson")


@router.get("/loans/{address}")
async def list_loan_relations(address: str, request: Request) -> Dict[str, Any]:
    """Loans between `address` and the members of its trust circle."""
    services = _services(request)
    user = _parse_address(address)

    try:
        summary = await services.loan_reader.get_balance_summary(user)
        relations = await services.loan_reader.get_loan_relations(user)
    except RailaError as e:
        logger.error(f"Loan lookup for {user.short()} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    loans: List[Dict[str, Any]] = [relation.to_dict() for relation in relations]
    return {
        "address": user,
        "lent": str(summary.lent),
        "borrowed": str(summary.borrowed),
        "loans": loans,
    }
