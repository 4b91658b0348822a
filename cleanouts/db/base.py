from cleanouts.db.session import Base
from cleanouts.models.user import User
from cleanouts.models.service import Service
from cleanouts.models.booking import Booking
from cleanouts.models.payment import Payment
from cleanouts.models.notification import Notification
from cleanouts.models.review import ServiceReview
