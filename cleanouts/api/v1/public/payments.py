import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cleanouts.db.session import get_db
from cleanouts.api.deps import get_current_user, get_payment_gateway
from cleanouts.core.exceptions import DomainError
from cleanouts.models.user import User
from cleanouts.schemas.payment import PaymentIntentCreate, PaymentIntentResponse, WebhookAck
from cleanouts.services.payments import PaymentGateway, PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payments", tags=["Payments"])


@router.post("/create-intent", response_model=PaymentIntentResponse)
def create_payment_intent(
    body: PaymentIntentCreate,
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    current_user: User = Depends(get_current_user),
):
    """Client secret for the booking's PaymentIntent; repeat calls reuse the same intent."""
    intent = PaymentService(db, gateway).create_or_reuse_intent(body.booking_id, current_user)
    return PaymentIntentResponse(
        clientSecret=intent.client_secret,
        paymentIntentId=intent.id,
        amount=intent.amount,
        currency=intent.currency,
    )


@router.post("/webhook", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Stripe webhook endpoint.

    The signature is checked against the raw body, so this route reads the
    request itself. A bad signature is a 400; a failing handler is a 500 so
    Stripe redelivers the event.
    """
    payload = await request.body()
    event = gateway.construct_event(payload, stripe_signature)

    try:
        handled = await run_in_threadpool(PaymentService(db, gateway).handle_event, event)
    except DomainError:
        raise
    except Exception:
        logger.exception("Webhook handler failed for event %s (%s)", event.get("id"), event.get("type"))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": "Webhook handler failed"},
        )
    return WebhookAck(event_type=event.get("type") or "unknown", handled=handled)
