"""
Stripe payment bridge.

``PaymentService.create_or_reuse_intent`` hands the checkout page a
PaymentIntent client secret for a booking, reusing the booking's existing
intent where Stripe still considers it payable. ``PaymentService.handle_event``
reconciles booking payment fields from verified webhook events; every handler
is idempotent so Stripe's redeliveries are harmless.

All Stripe SDK calls go through a ``PaymentGateway`` so tests can swap in a
fake through a dependency override.
"""

import json
import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Optional
from uuid import UUID

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from cleanouts.core.config import settings
from cleanouts.core.exceptions import (
    AlreadyPaidError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from cleanouts.models.booking import Booking, BookingStatus, PaymentStatus
from cleanouts.models.payment import Payment
from cleanouts.models.user import User
from cleanouts.services.notifications import notify

logger = logging.getLogger(__name__)

INTENT_SUCCEEDED = "succeeded"
INTENT_CANCELED = "canceled"


def to_minor_units(amount: Decimal) -> int:
    """Dollars to cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class IntentInfo:
    id: str
    client_secret: str
    status: str
    amount: int
    currency: str


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------

class PaymentGateway:
    """The three processor calls the bridge needs."""

    def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        description: Optional[str] = None,
    ) -> IntentInfo:
        raise NotImplementedError

    def retrieve_intent(self, intent_id: str) -> IntentInfo:
        raise NotImplementedError

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        raise NotImplementedError


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: Optional[str], webhook_secret: Optional[str]):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    @staticmethod
    def _to_info(intent: Any) -> IntentInfo:
        return IntentInfo(
            id=intent.id,
            client_secret=intent.client_secret,
            status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
        )

    def create_intent(self, amount, currency, metadata, description=None):
        params: Dict[str, Any] = {
            "amount": amount,
            "currency": currency,
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if description:
            params["description"] = description
        if settings.STRIPE_STATEMENT_DESCRIPTOR_SUFFIX:
            params["statement_descriptor_suffix"] = settings.STRIPE_STATEMENT_DESCRIPTOR_SUFFIX
        try:
            intent = stripe.PaymentIntent.create(api_key=self.api_key, **params)
        except stripe.StripeError as e:
            logger.error("Stripe PaymentIntent.create failed: %s", e)
            raise UpstreamError("Failed to create payment intent") from e
        return self._to_info(intent)

    def retrieve_intent(self, intent_id):
        try:
            intent = stripe.PaymentIntent.retrieve(intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            raise UpstreamError("Failed to retrieve payment intent") from e
        return self._to_info(intent)

    def construct_event(self, payload, signature):
        if not signature or not self.webhook_secret:
            raise ValidationError("Missing webhook signature", code="INVALID_SIGNATURE")
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.Webhook.construct_event(text, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise ValidationError("Invalid webhook signature", code="INVALID_SIGNATURE") from e
        except ValueError as e:
            raise ValidationError("Invalid webhook payload", code="INVALID_PAYLOAD") from e
        # Handlers work on plain dicts, not StripeObjects
        return json.loads(text)


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PaymentService:
    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Database error while trying to %s", action)
            raise UpstreamError(f"Failed to {action}") from e

    # -----------------------------------------------------------------------
    # Create / reuse intent
    # -----------------------------------------------------------------------

    def create_or_reuse_intent(self, booking_id: UUID, actor: User) -> IntentInfo:
        booking = (
            self.db.query(Booking)
            .options(joinedload(Booking.service))
            .filter(Booking.id == booking_id)
            .first()
        )
        if not booking or (not actor.is_admin and booking.user_id != actor.id):
            raise NotFoundError("Booking not found")
        if booking.status == BookingStatus.cancelled.value:
            raise ValidationError("Cannot pay for a cancelled booking")
        if booking.payment_status == PaymentStatus.paid.value:
            raise AlreadyPaidError("Booking is already paid")

        amount = to_minor_units(booking.total_price)
        if amount <= 0:
            raise ValidationError("Booking has no amount due")
        if amount < settings.STRIPE_MIN_CHARGE_CENTS:
            raise ValidationError(
                f"Payment amount too small (minimum ${settings.STRIPE_MIN_CHARGE_CENTS / 100:.2f})",
                details={"amount": amount, "minimum": settings.STRIPE_MIN_CHARGE_CENTS},
            )

        if booking.payment_intent_id:
            existing = None
            try:
                existing = self.gateway.retrieve_intent(booking.payment_intent_id)
            except UpstreamError:
                logger.warning(
                    "Could not retrieve intent %s for booking %s; creating a new one",
                    booking.payment_intent_id, booking.booking_number,
                )
            if existing is not None:
                if existing.status == INTENT_SUCCEEDED:
                    raise AlreadyPaidError("Payment already completed for this booking")
                # A rescheduled booking may have a new price
                if existing.status != INTENT_CANCELED and existing.amount == amount:
                    logger.info("Reusing intent %s for booking %s", existing.id, booking.booking_number)
                    return existing

        service_name = booking.service.name if booking.service else "Service"
        intent = self.gateway.create_intent(
            amount,
            settings.STRIPE_CURRENCY,
            metadata={
                "bookingId": str(booking.id),
                "bookingNumber": booking.booking_number,
                "userId": str(booking.user_id),
            },
            description=f"{service_name} - booking {booking.booking_number}",
        )

        booking.payment_intent_id = intent.id
        booking.payment_status = PaymentStatus.processing.value
        self._commit("store payment intent")
        logger.info("Created intent %s (%d %s) for booking %s", intent.id, amount, intent.currency, booking.booking_number)
        return intent

    # -----------------------------------------------------------------------
    # Webhook
    # -----------------------------------------------------------------------

    def handle_event(self, event: Dict[str, Any]) -> bool:
        """Apply a verified event. Returns False for event types we ignore."""
        event_type = event.get("type")
        obj = (event.get("data") or {}).get("object") or {}
        handler = {
            "payment_intent.succeeded": self._on_intent_succeeded,
            "payment_intent.payment_failed": self._on_intent_failed,
            "payment_intent.canceled": self._on_intent_canceled,
            "charge.refunded": self._on_charge_refunded,
        }.get(event_type)
        if handler is None:
            logger.info("Ignoring Stripe event %s (%s)", event.get("id"), event_type)
            return False

        logger.info("Handling Stripe event %s (%s)", event.get("id"), event_type)
        handler(obj)
        return True

    def _find_booking(self, intent_id: Optional[str], metadata: Optional[Dict[str, Any]]) -> Optional[Booking]:
        booking_ref = (metadata or {}).get("bookingId")
        if booking_ref:
            try:
                booking = self.db.query(Booking).filter(Booking.id == UUID(str(booking_ref))).first()
            except ValueError:
                booking = None
            if booking:
                return booking
        if intent_id:
            return self.db.query(Booking).filter(Booking.payment_intent_id == intent_id).first()
        return None

    def _upsert_payment(self, booking: Booking, intent_id: str, amount: int, currency: str, status: str) -> None:
        payment = self.db.query(Payment).filter(Payment.stripe_payment_intent_id == intent_id).first()
        if payment is None:
            self.db.add(Payment(
                booking_id=booking.id,
                stripe_payment_intent_id=intent_id,
                amount=amount,
                currency=currency,
                status=status,
            ))
        else:
            payment.status = status

    def _on_intent_succeeded(self, intent: Dict[str, Any]) -> None:
        booking = self._find_booking(intent.get("id"), intent.get("metadata"))
        if booking is None:
            logger.warning("No booking found for succeeded intent %s", intent.get("id"))
            return
        if booking.payment_status == PaymentStatus.paid.value:
            logger.info("Booking %s already marked paid", booking.booking_number)
            return

        amount = intent.get("amount_received") or intent.get("amount") or 0
        booking.payment_status = PaymentStatus.paid.value
        booking.payment_intent_id = intent["id"]
        if booking.status == BookingStatus.pending.value:
            booking.status = BookingStatus.confirmed.value
        self._upsert_payment(
            booking, intent["id"], amount, intent.get("currency") or settings.STRIPE_CURRENCY, PaymentStatus.paid.value
        )
        self._commit("record payment")
        logger.info("Booking %s paid via intent %s", booking.booking_number, intent["id"])

        notify(
            self.db,
            booking.user_id,
            "Payment Successful",
            f"Payment of ${amount / 100:.2f} for booking {booking.booking_number} was received. "
            "Your booking is confirmed.",
            type="success",
            reference_id=booking.id,
        )

    def _on_intent_failed(self, intent: Dict[str, Any]) -> None:
        booking = self._find_booking(intent.get("id"), intent.get("metadata"))
        if booking is None:
            logger.warning("No booking found for failed intent %s", intent.get("id"))
            return
        if booking.payment_status in (PaymentStatus.paid.value, PaymentStatus.failed.value):
            logger.info(
                "Ignoring failure for booking %s (payment_status=%s)",
                booking.booking_number, booking.payment_status,
            )
            return

        booking.payment_status = PaymentStatus.failed.value
        self._upsert_payment(
            booking,
            intent["id"],
            intent.get("amount") or 0,
            intent.get("currency") or settings.STRIPE_CURRENCY,
            PaymentStatus.failed.value,
        )
        self._commit("record failed payment")

        error = (intent.get("last_payment_error") or {}).get("message")
        logger.info("Payment failed for booking %s: %s", booking.booking_number, error)
        notify(
            self.db,
            booking.user_id,
            "Payment Failed",
            f"Payment for booking {booking.booking_number} failed. Please try again.",
            type="error",
            reference_id=booking.id,
        )

    def _on_intent_canceled(self, intent: Dict[str, Any]) -> None:
        booking = self._find_booking(intent.get("id"), intent.get("metadata"))
        if booking is None:
            logger.warning("No booking found for canceled intent %s", intent.get("id"))
            return
        if booking.payment_status in (PaymentStatus.paid.value, PaymentStatus.pending.value):
            return
        booking.payment_status = PaymentStatus.pending.value
        self._commit("reset payment status")
        logger.info("Intent %s canceled; booking %s back to pending payment", intent.get("id"), booking.booking_number)

    def _on_charge_refunded(self, charge: Dict[str, Any]) -> None:
        intent_id = charge.get("payment_intent")
        booking = self._find_booking(intent_id, charge.get("metadata"))
        if booking is None:
            logger.warning("No booking found for refunded charge %s", charge.get("id"))
            return
        if booking.payment_status == PaymentStatus.refunded.value:
            return

        booking.payment_status = PaymentStatus.refunded.value
        if intent_id:
            self._upsert_payment(
                booking,
                intent_id,
                charge.get("amount") or 0,
                charge.get("currency") or settings.STRIPE_CURRENCY,
                PaymentStatus.refunded.value,
            )
        self._commit("record refund")
        logger.info("Booking %s refunded", booking.booking_number)

        notify(
            self.db,
            booking.user_id,
            "Payment Refunded",
            f"Your payment for booking {booking.booking_number} has been refunded.",
            type="info",
            reference_id=booking.id,
        )
