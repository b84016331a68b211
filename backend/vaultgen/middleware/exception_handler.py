"""Exception handler for structured error responses."""

import logging
from fastapi import Request
from fastapi.responses import JSONResponse
from ..exceptions import VaultgenError

logger = logging.getLogger(__name__)


async def vaultgen_exception_handler(request: Request, exc: VaultgenError) -> JSONResponse:
    """
    Render a VaultgenError as ``{error, message, details}`` with its status code.

    Client errors are logged at warning level, server errors at error level.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.error_code.value}: {exc.message}",
        extra={
            "error_code": exc.error_code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
            "status_code": exc.status_code
        }
    )

    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )
