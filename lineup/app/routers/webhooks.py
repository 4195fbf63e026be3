import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError as PayloadValidationError

from lineup.app.core import redis_client as redis_module
from lineup.app.core.config import settings
from lineup.app.core.errors import LedgerError, ledger_error_to_http
from lineup.app.dependencies import get_ledger
from lineup.app.routers.schemas import OpenTableWebhookIn, OpenTableWebhookOut
from lineup.app.services.ledger.service import ReservationLedger
from lineup.app.services.ledger.types import SourceSystem
from lineup.app.services.opentable import ingest_event, verify_signature


router = APIRouter()

SIGNATURE_HEADER = "X-OpenTable-Signature"


def _ingest_key(restaurant_id: str, external_id: str) -> str:
    return f"ingest:{restaurant_id}:{SourceSystem.EXTERNAL_OPENTABLE.value}:{external_id}"


@router.post("/webhooks/opentable", response_model=OpenTableWebhookOut)
async def opentable_webhook(
    request: Request,
    ledger: ReservationLedger = Depends(get_ledger),
) -> OpenTableWebhookOut:
    """Verify the signature, then apply the event to the ledger under a short ingestion hold."""
    body = await request.body()
    secret = settings.OPENTABLE_WEBHOOK_SECRET
    if secret and not verify_signature(body, request.headers.get(SIGNATURE_HEADER), secret):
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Invalid signature")

    try:
        event = OpenTableWebhookIn.model_validate(json.loads(body))
    except (ValueError, PayloadValidationError) as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Malformed webhook payload") from exc

    if redis_module.redis_client is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Redis unavailable")

    hold_key = _ingest_key(str(event.data.get("restaurantId")), str(event.data.get("reservationId")))
    hold_acquired = await redis_module.acquire_hold(hold_key, settings.INGEST_HOLD_MS)
    if not hold_acquired:
        raise HTTPException(status.HTTP_409_CONFLICT, detail="Event for this reservation is already being ingested")

    try:
        result = await ingest_event(ledger, event.event_type, event.data)
    except LedgerError as exc:
        raise ledger_error_to_http(exc) from exc
    finally:
        await redis_module.release_hold(hold_key)

    return OpenTableWebhookOut(success=True, reservation_id=result.reservation_id, created=result.created)
