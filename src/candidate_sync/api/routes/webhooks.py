"""POST /webhooks/{event_type}: hand a CRM notification to the ingest pipeline."""

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from candidate_sync.errors import (
    CandidateSyncError,
    IdentityNotFoundError,
    UnknownEventTypeError,
    ValidationError,
)
from candidate_sync.models.events import InboundEvent
from candidate_sync.pipeline.pipeline import parse_event_type

from ..auth import verify_webhook_token

logger = structlog.get_logger(__name__)

router = APIRouter()


def _error(status_code: int, error: str, details: object = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"ok": False, "error": error, "details": details},
    )


@router.post("/webhooks/{event_type}")
async def receive_webhook(
    event_type: str,
    request: Request,
    _auth: None = Depends(verify_webhook_token),
):
    """Process one webhook delivery synchronously.

    4xx responses are persistent failures; 5xx responses ask the CRM to
    redeliver.
    """
    log = logger.bind(event_type=event_type)

    try:
        parsed_type = parse_event_type(event_type)
    except UnknownEventTypeError as e:
        return _error(404, "unknown_event_type", e.context)

    try:
        payload = await request.json()
    except ValueError:  # JSONDecodeError and UnicodeDecodeError
        return _error(400, "invalid_json", "Request body is not valid JSON")

    log.info("webhook.received")
    pipeline = request.app.state.pipeline

    try:
        result = await pipeline.process(InboundEvent(event_type=parsed_type, payload=payload))
    except ValidationError as e:
        log.info("webhook.malformed", error=e.message)
        return _error(400, "malformed_payload", {"message": e.message, **e.context})
    except IdentityNotFoundError as e:
        log.info("webhook.identity_not_found", error=e.message)
        return _error(404, "not_found", {"message": e.message, **e.context})
    except CandidateSyncError as e:
        log.error("webhook.failed", error=str(e), error_type=type(e).__name__)
        return _error(500, "store_error", e.message)
    except Exception as e:
        log.error("webhook.failed", error=str(e), error_type=type(e).__name__)
        return _error(500, "internal_error", str(e))

    log.info("webhook.complete", status=result.status, reason=result.reason)
    return {"ok": True, **result.to_dict()}
