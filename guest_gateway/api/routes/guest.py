"""
Guest Mode endpoint.

Public, browser-facing: every response carries permissive CORS headers and
every failure is a JSON body with a stable `code`.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from guest_gateway.core.errors import ConfigurationError, GatewayError, InternalError
from guest_gateway.db.session import get_db
from guest_gateway.services.quota_gateway import handle_guest_request

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

REJECTED_METHODS = ["GET", "PUT", "PATCH", "DELETE", "HEAD", "TRACE", "CONNECT"]


def json_response(status_code: int, body: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body, headers=CORS_HEADERS)


def error_response(error: GatewayError) -> JSONResponse:
    return json_response(error.status_code, error.to_body())


@router.options("/")
@router.options("/{path:path}")
async def preflight(path: str = ""):
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


@router.api_route("/", methods=REJECTED_METHODS)
@router.api_route("/{path:path}", methods=REJECTED_METHODS)
async def method_not_allowed(path: str = ""):
    return json_response(status.HTTP_405_METHOD_NOT_ALLOWED, {"error": "Method not allowed"})


@router.post("/")
@router.post("/{path:path}")
async def guest_completion(request: Request, path: str = "", db: Optional[Session] = Depends(get_db)):
    """
    Metered guest completion: body is the upstream payload plus a `_meta`
    block with clientUuid, deviceFingerprint and optional parallelCount.
    Any path is accepted.
    """
    try:
        raw = await request.body()
        status_code, body = await run_in_threadpool(handle_guest_request, db, raw)
        return json_response(status_code, body)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e.reason)
        return error_response(e)
    except GatewayError as e:
        return error_response(e)
    except Exception as e:
        logger.exception("Guest gateway error: %s", e)
        return error_response(InternalError(e))
