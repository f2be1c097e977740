from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog
from .session import Session
from .patient import Patient
from .slot import Slot
from .booking import BookingRequest, BookingStatus
