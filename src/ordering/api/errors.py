"""Map engine errors onto HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError, ValidationError
from protean.integrations.fastapi import register_exception_handlers

from ordering.errors import OrderingError

STATUS_BY_KIND = {
    "validation_error": 400,
    "not_found": 404,
    "forbidden": 403,
    "state_conflict": 409,
    "insufficient_stock": 409,
    "duplicate_action": 409,
}


def _error_body(kind, reason, messages):
    return {"error": {"kind": kind, "reason": reason, "messages": messages}}


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    return JSONResponse(
        status_code=STATUS_BY_KIND.get(exc.kind, 400),
        content=_error_body(exc.kind, exc.reason, exc.messages),
    )


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    messages = exc.messages if isinstance(exc.messages, dict) else {"_entity": [str(exc.messages)]}
    reason = getattr(exc, "reason", None)
    if reason is None:
        reason = next((str(msgs[0]) for msgs in messages.values() if msgs), "Invalid request")
    return JSONResponse(status_code=400, content=_error_body("validation_error", reason, messages))


async def version_conflict_handler(request: Request, exc: ExpectedVersionError) -> JSONResponse:
    reason = "The order or a product changed while this request was processed; resubmit it"
    return JSONResponse(
        status_code=409,
        content=_error_body("state_conflict", reason, {"_entity": [reason]}),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Protean's defaults first, then the engine's taxonomy on top."""
    register_exception_handlers(app)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(ExpectedVersionError, version_conflict_handler)
