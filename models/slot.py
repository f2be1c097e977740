from datetime import datetime
from models.db import db

class Slot(db.Model):
    __tablename__ = "slots"

    id = db.Column(db.Integer, primary_key=True)

    doctor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False, index=True)
    start_hour = db.Column(db.Integer, nullable=False)
    end_hour = db.Column(db.Integer, nullable=False)

    capacity = db.Column(db.Integer, nullable=False)
    location = db.Column(db.String(160), nullable=False)

    # only ever changed through services.slot_store counter functions
    booked_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    bookings = db.relationship("BookingRequest", back_populates="slot", lazy="dynamic")

    __table_args__ = (
        # One slot per doctor/day/hour range
        db.UniqueConstraint("doctor_id", "date", "start_hour", "end_hour", name="uq_doctor_slot_window"),
        db.CheckConstraint("start_hour >= 0 AND end_hour <= 23 AND end_hour > start_hour", name="ck_slot_hours"),
        db.CheckConstraint("capacity >= 1", name="ck_slot_capacity"),
        db.CheckConstraint("booked_count >= 0 AND booked_count <= capacity", name="ck_slot_booked_within_capacity"),
    )

    @property
    def is_full(self) -> bool:
        return self.booked_count >= self.capacity

    @property
    def available(self) -> int:
        return max(self.capacity - self.booked_count, 0)

    def to_dict(self):
        return {
            "id": self.id,
            "doctor_id": self.doctor_id,
            "date": self.date.isoformat(),
            "start_hour": self.start_hour,
            "end_hour": self.end_hour,
            "capacity": self.capacity,
            "location": self.location,
            "booked_count": self.booked_count,
            "available": self.available,
            "is_full": self.is_full,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Slot doctor_id={self.doctor_id} {self.date} {self.start_hour}-{self.end_hour} {self.booked_count}/{self.capacity}>"
