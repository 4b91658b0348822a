from cleanouts.schemas.common import PaginatedResponse, ErrorResponse
from cleanouts.schemas.user import User, UserAdminUpdate, UserSummary, ReviewAuthor
from cleanouts.schemas.service import Service, ServiceCreate, ServiceUpdate, ServiceSummary
from cleanouts.schemas.booking import (
    Booking, BookingCreate, BookingUpdate, AdminBooking, CustomerInfo,
)
from cleanouts.schemas.availability import (
    AvailabilityResult, AvailabilityResponse, AvailabilitySummary, TimeSlotAvailability,
    BulkAvailabilityRequest, BulkAvailabilityResponse, BulkAvailabilityResult,
    DateAvailability, CacheClearResponse,
)
from cleanouts.schemas.payment import PaymentIntentCreate, PaymentIntentResponse, WebhookAck
from cleanouts.schemas.notification import Notification
from cleanouts.schemas.review import Review, ReviewCreate
