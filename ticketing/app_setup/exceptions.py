"""
Gestionnaires d'exceptions de l'API.
- TicketingError: {success: false, error, errorType} avec le code HTTP de son ErrorKind.
- RequestValidationError (chemins /api/*): 400 VALIDATION_ERROR au même format.
- HTTPException: body JSON FastAPI standard {"detail": ...}.
- Exception inattendue: journalisée, 500 INTERNAL_ERROR sans détail interne.
"""
import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ticketing.errors import ErrorKind, TicketingError

logger = logging.getLogger(__name__)


def _error_response(kind: ErrorKind, message: str, status_code: int = 0) -> JSONResponse:
    return JSONResponse(
        status_code=status_code or kind.status_code,
        content={"success": False, "error": message, "errorType": kind.error_type},
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(TicketingError)
    async def ticketing_error(request: Request, exc: TicketingError):
        if exc.kind.retry == "fatal":
            logger.error("api.error path=%s type=%s error=%s", request.url.path, exc.error_type, exc.message)
        else:
            logger.info("api.error path=%s type=%s error=%s", request.url.path, exc.error_type, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError):
        if request.url.path.startswith("/api/"):
            message = "; ".join(str(e.get("msg")) for e in exc.errors()) or "Requête invalide"
            return _error_response(ErrorKind.VALIDATION, message)
        return JSONResponse(status_code=422, content={"detail": exc.errors()})

    @app.exception_handler(HTTPException)
    async def http_error(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)

    @app.exception_handler(Exception)
    async def unexpected_error(request: Request, exc: Exception):
        logger.exception("api.unexpected path=%s", request.url.path)
        return _error_response(ErrorKind.INTERNAL, "Erreur interne, veuillez réessayer")
