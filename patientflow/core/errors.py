import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class QueueError(Exception):
    """Base for every failure the visit core reports to its caller."""
    status_code: int = 400
    code: str = "error"

    def __init__(self, message: str | None = None):
        self.message = message or self.code
        super().__init__(self.message)

class ValidationFailed(QueueError):
    """A required field is missing or out of range (e.g. approval without room/doctor)."""
    status_code = 422
    code = "validation_error"

class InvalidTransition(QueueError):
    """The state machine has no edge for the requested status change."""
    status_code = 400
    code = "invalid_transition"

class Forbidden(QueueError):
    status_code = 403
    code = "forbidden"

class NotFound(QueueError):
    status_code = 404
    code = "not_found"

class Conflict(QueueError):
    status_code = 409
    code = "conflict"

class AlreadyProcessed(Conflict):
    """Lost a compare-and-swap: the record changed between read and write."""
    code = "already_processed"

class InvalidState(QueueError):
    """Triage operation attempted while the record is not in a triage-capable state."""
    status_code = 412
    code = "invalid_state"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(QueueError)
    async def queue_error_handler(request: Request, exc: QueueError):
        logger.warning(f"{exc.__class__.__name__} on {request.method} {request.url.path}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"code": exc.code, "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.critical(f"Unhandled exception for request {request.method} {request.url.path}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"message": "An internal server error occurred."},
        )
