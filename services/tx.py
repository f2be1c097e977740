import logging
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from models import db
from services.errors import BookingError, Conflict

logger = logging.getLogger(__name__)


@contextmanager
def transaction(operation: str, conflict=None, **context):
    """
    Commit the session when the block finishes, roll back on any failure.

    `conflict` is the BookingError subclass a unique/check constraint
    violation is reported as. Without it the IntegrityError propagates
    like any other persistence fault.
    """
    try:
        yield
        db.session.commit()
    except BookingError as exc:
        db.session.rollback()
        level = logging.WARNING if isinstance(exc, Conflict) else logging.INFO
        logger.log(level, "%s rejected: %s %s %s", operation, exc.code, exc, context)
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if conflict is None:
            logger.exception("%s failed on constraint %s", operation, context)
            raise
        logger.warning("%s rejected by constraint %s: %s", operation, context, exc.orig)
        raise conflict(**context) from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("%s failed %s", operation, context)
        raise
