"""Patient directory used by the booking flow: look up or register a patient."""
import logging
from datetime import date as calendar_date

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from models import db
from models.patient import Patient
from services.errors import Conflict, PatientNotFound, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_FIRST_PATIENT_NUMBER = 10001


def find_patient(patient_id) -> Patient:
    patient = db.session.get(Patient, patient_id) if patient_id is not None else None
    if patient is None:
        raise PatientNotFound(patient_id=patient_id)
    return patient


def _next_patient_number() -> int:
    last = db.session.query(func.max(Patient.patient_number)).scalar()
    if last:
        return last + 1
    return current_app.config.get("FIRST_PATIENT_NUMBER", DEFAULT_FIRST_PATIENT_NUMBER)


def _parse_dob(value) -> calendar_date:
    if isinstance(value, calendar_date):
        return value
    try:
        # accepts "1990-04-02" and full ISO timestamps from date pickers
        return calendar_date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError):
        raise ValidationError("patient dob must be an ISO date (YYYY-MM-DD)")


def create_patient(data: dict) -> Patient:
    """
    Register a new patient inside the caller's transaction. The row is
    flushed (so it has an id) but not committed.
    """
    if not isinstance(data, dict):
        raise ValidationError("patient_data must be an object")

    name = (data.get("name") or "").strip() if isinstance(data.get("name"), str) else ""
    if not name:
        raise ValidationError("patient name is required")

    if data.get("dob") in (None, ""):
        raise ValidationError("patient dob is required")
    dob = _parse_dob(data.get("dob"))

    gender = data.get("gender")
    if gender not in Patient.GENDERS:
        raise ValidationError(f"patient gender must be one of {', '.join(Patient.GENDERS)}")

    patient = Patient(
        patient_number=_next_patient_number(),
        name=name,
        dob=dob,
        gender=gender,
        contact_number=str(data.get("contact_number") or "").strip() or None,
        address=str(data.get("address") or "").strip() or None,
    )
    db.session.add(patient)
    try:
        db.session.flush()
    except IntegrityError as exc:
        # two registrations raced for the same patient_number
        raise Conflict("Could not register patient, please retry") from exc

    logger.info("Patient %s registered as #%s", patient.id, patient.patient_number)
    return patient
