from datetime import datetime
from models.db import db

class Patient(db.Model):
    __tablename__ = "patients"

    GENDERS = ("Male", "Female", "Other")

    id = db.Column(db.Integer, primary_key=True)

    # human-facing sequential number printed on records (10001, 10002, ...)
    patient_number = db.Column(db.Integer, unique=True, nullable=False, index=True)

    name = db.Column(db.String(120), nullable=False, index=True)
    dob = db.Column(db.Date, nullable=False)
    gender = db.Column(db.String(10), nullable=False)
    contact_number = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "patient_number": self.patient_number,
            "name": self.name,
            "dob": self.dob.isoformat(),
            "gender": self.gender,
            "contact_number": self.contact_number,
            "address": self.address,
        }
