from __future__ import annotations

import json
import logging
from typing import Any, Union
from uuid import uuid4

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from clarity import schemas
from clarity.ai.providers.base import CompletionError
from clarity.config.settings import ConfigError
from clarity.deps import Collaborators, get_collaborators
from clarity.pipeline import answer_query


_logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Clarity"])

_OTHER_METHODS = ["GET", "HEAD", "PUT", "PATCH", "DELETE"]


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None
    if isinstance(data, str):
        # Some embeds double-encode the body; a plain string is the message itself.
        try:
            return json.loads(data)
        except ValueError:
            return data
    return data


def _message_from(data: Any) -> Any:
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        return data.get("message")
    return None


@router.options("/clarity")
def clarity_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@router.api_route("/clarity", methods=_OTHER_METHODS)
def clarity_method_not_allowed() -> JSONResponse:
    return JSONResponse({"error": "Method not allowed"}, status_code=status.HTTP_405_METHOD_NOT_ALLOWED)


@router.post("/clarity", response_model=Union[schemas.DbResult, schemas.GptResult])
async def clarity(
    request: Request,
    background_tasks: BackgroundTasks,
    services: Collaborators = Depends(get_collaborators),
):
    data = await _read_body(request)
    message = _message_from(data)
    if not isinstance(message, str) or not message.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing message in body")

    fields = dict(data) if isinstance(data, dict) else {}
    fields["message"] = message.strip()
    try:
        query = schemas.ClarityIn.model_validate(fields)
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid request body") from exc

    request_id = str(uuid4())
    try:
        settings = services.settings()
        settings.require()
        result = await answer_query(
            query,
            store=services.store(),
            provider=services.provider(),
            settings=settings,
        )
        interaction_log = services.interaction_log()
    except ConfigError as exc:
        _logger.error("clarity misconfigured missing=%s", ",".join(exc.missing))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Server misconfigured", "details": str(exc)},
        ) from exc
    except CompletionError as exc:
        _logger.error("completion failed request_id=%s error=%s", request_id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Completion service error", "details": str(exc)},
        ) from exc
    except Exception as exc:
        _logger.exception("clarity handler failed request_id=%s", request_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Server error", "details": str(exc)},
        ) from exc

    _logger.info("clarity answered request_id=%s kind=%s mode=%s", request_id, result.kind, result.ui.mode)
    if interaction_log is not None:
        background_tasks.add_task(
            interaction_log.record,
            request_id=request_id,
            user_query=query.message,
            history=[t.model_dump() for t in query.history],
            kind=result.kind,
            model_response=result.answer.model_dump() if result.kind == "gpt" else None,
            ui=result.ui.model_dump(),
        )
    return result


@router.options("/check")
def check_preflight() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@router.api_route("/check", methods=_OTHER_METHODS)
def check_method_not_allowed() -> JSONResponse:
    return JSONResponse({"ok": False, "error": "Method not allowed"}, status_code=status.HTTP_405_METHOD_NOT_ALLOWED)


@router.post("/check", response_model=schemas.CheckOut)
async def check(request: Request, services: Collaborators = Depends(get_collaborators)):
    data = await _read_body(request)
    try:
        payload = schemas.CheckIn.model_validate(data if isinstance(data, dict) else {})
    except ValidationError:
        payload = schemas.CheckIn()
    if not payload.q:
        return JSONResponse({"ok": False, "error": "Missing query"}, status_code=status.HTTP_400_BAD_REQUEST)

    try:
        store = services.store()
    except ConfigError as exc:
        return JSONResponse(
            {"ok": False, "error": str(exc)},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    found = await run_in_threadpool(store.search, payload.q, limit=10)
    best = found.best
    result = None
    if best is not None:
        result = schemas.CheckRecord(
            name=best.name,
            verdict=best.verdict,
            why_brief=best.why_brief,
            dao=schemas.CheckDao(signal=best.dao_histamine_signal, mechanism=best.dao_mechanism),
            cycle=schemas.CheckCycle(flag=best.cycle_flag, notes=best.cycle_notes),
            citations=best.citations,
        )
    return schemas.CheckOut(query=payload.q, result=result)
