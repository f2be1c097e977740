from datetime import datetime
from sqlalchemy import text

from models.db import db


class BookingStatus:
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    CHECKED_IN = "CheckedIn"
    COMPLETED = "Completed"

    ALL = (PENDING, ACCEPTED, REJECTED, CHECKED_IN, COMPLETED)

    # a patient may hold only one of these per slot; also the only deletable/reschedulable ones
    ACTIVE = (PENDING, ACCEPTED)

    # statuses a booking may be created in
    INITIAL = (PENDING, ACCEPTED)

    TRANSITIONS = {
        PENDING: (ACCEPTED, REJECTED),
        ACCEPTED: (CHECKED_IN, REJECTED),
        CHECKED_IN: (COMPLETED,),
        REJECTED: (),
        COMPLETED: (),
    }

    @classmethod
    def holds_capacity(cls, status: str) -> bool:
        """Every booking occupies a seat from creation until it is rejected."""
        return status != cls.REJECTED

    @classmethod
    def can_transition(cls, old: str, new: str) -> bool:
        return new in cls.TRANSITIONS.get(old, ())


class BookingRequest(db.Model):
    __tablename__ = "booking_requests"

    id = db.Column(db.Integer, primary_key=True)

    slot_id = db.Column(db.Integer, db.ForeignKey("slots.id"), nullable=False, index=True)
    patient_id = db.Column(db.Integer, db.ForeignKey("patients.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default=BookingStatus.PENDING, index=True)
    reason = db.Column(db.String(500), nullable=True)

    requested_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    slot = db.relationship("Slot", back_populates="bookings")
    patient = db.relationship("Patient")

    __table_args__ = (
        # At most one active booking per patient on a slot
        db.Index(
            "uq_active_booking_per_patient",
            "slot_id",
            "patient_id",
            unique=True,
            sqlite_where=text("status IN ('Pending', 'Accepted')"),
            postgresql_where=text("status IN ('Pending', 'Accepted')"),
        ),
    )

    def to_dict(self, enrich: bool = True):
        out = {
            "id": self.id,
            "slot_id": self.slot_id,
            "patient_id": self.patient_id,
            "status": self.status,
            "reason": self.reason,
            "requested_at": self.requested_at.isoformat() if self.requested_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if enrich:
            out["slot"] = self.slot.to_dict() if self.slot else None
            out["patient"] = self.patient.to_dict() if self.patient else None
        return out

    def __repr__(self):
        return f"<BookingRequest id={self.id} slot_id={self.slot_id} patient_id={self.patient_id} {self.status}>"
