from pydantic import AliasChoices, BaseModel, ConfigDict, Field, UUID4


# POST /payments/create-intent
class PaymentIntentCreate(BaseModel):
    booking_id: UUID4 = Field(validation_alias=AliasChoices("bookingId", "booking_id"))

    model_config = ConfigDict(frozen=True)


# Keys follow Stripe.js naming so the checkout page can pass them straight through
class PaymentIntentResponse(BaseModel):
    success: bool = True
    clientSecret: str
    paymentIntentId: str
    amount: int
    currency: str


class WebhookAck(BaseModel):
    received: bool = True
    event_type: str
    handled: bool = True
