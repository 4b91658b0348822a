import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cleanouts.models.notification import Notification

logger = logging.getLogger(__name__)


def notify(
    db: Session,
    user_id: UUID,
    title: str,
    message: str,
    type: str = "info",
    reference_id: Optional[UUID] = None,
) -> bool:
    """
    Write an in-app notification for ``user_id``.

    Runs after the primary change has been committed. A failure here is logged
    and rolled back on its own; it never reaches the caller.
    """
    try:
        db.add(Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            reference_id=reference_id,
        ))
        db.commit()
        return True
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Error creating notification %r for user %s", title, user_id)
        return False
