import logging
import time
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse

from .config import Config
from .errors import (
    ClientAlreadyInitialized,
    InvalidProjection,
    NoMorePages,
    NotFound,
    RemoteFault,
    RemoteListsError,
    Uninitialized,
    ValidationFault,
)


logger = logging.getLogger(__name__)

STATUS_CODES = {
    NotFound: 404,
    InvalidProjection: 400,
    ValidationFault: 400,
    NoMorePages: 400,
    RemoteFault: 502,
    Uninitialized: 503,
    ClientAlreadyInitialized: 503,
}


def cors_allowed_origins() -> list[str]:
    return Config.allowed_origins()


def _with_cors(request: Request, response: JSONResponse) -> JSONResponse:
    origin = request.headers.get("origin")
    if origin and origin in cors_allowed_origins():
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "*"
    return response


def status_for(exc: RemoteListsError) -> int:
    for exc_type, status in STATUS_CODES.items():
        if isinstance(exc, exc_type):
            return status
    return 500


async def log_requests(request: Request, call_next: Callable):
    start_time = time.time()
    request_id = f"{int(time.time() * 1000)}-{id(request)}"

    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        # Only log slow requests (>1s) or errors
        if process_time > 1.0 or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} - {response.status_code} - {process_time:.2f}s")
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"[{request_id}] {request.method} {request.url.path} - ERROR: {str(e)} - {process_time:.2f}s")
        raise


async def remote_lists_exception_handler(request: Request, exc: RemoteListsError):
    status_code = status_for(exc)
    # Raw store detail goes to the log, never to the client
    logger.warning(f"{request.method} {request.url.path} -> {status_code} {exc.error_code}: {exc.message}")
    response = JSONResponse(
        status_code=status_code,
        content={"detail": exc.user_message, "error_code": exc.error_code},
    )
    return _with_cors(request, response)


async def global_exception_handler(request: Request, exc: Exception):
    request_id = f"{int(time.time() * 1000)}-{id(request)}"
    logger.error(f"[{request_id}] Unhandled exception in {request.method} {request.url.path}: {str(exc)}", exc_info=True)

    response = JSONResponse(status_code=500, content={"detail": "Internal server error"})
    return _with_cors(request, response)
