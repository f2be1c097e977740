from flask import Blueprint, request, jsonify, g

from models import db
from models.user import User
from security.rbac import DOCTOR, is_admin, require_roles
from services import slot_store
from services.errors import Conflict, SlotNotFound, ValidationError
from utils.audit import log_event
from utils.parsing import as_int, json_body, optional_day, parse_day

slots_bp = Blueprint("slots", __name__, url_prefix="/slots")

REQUIRED_FIELDS = ("date", "start_hour", "end_hour", "capacity", "location")


def owned_slot(slot_id):
    """Slot the caller may change. Another doctor's slot is reported as missing."""
    slot = slot_store.get_slot(slot_id)
    if not is_admin() and slot.doctor_id != g.user.id:
        raise SlotNotFound(slot_id=slot_id)
    return slot


def _doctor_id_for_create(data) -> int:
    # Doctors create their own slots; admins may create on a doctor's behalf
    if data.get("doctor_id") in (None, "") or not is_admin():
        return g.user.id
    doctor_id = as_int(data["doctor_id"], "doctor_id")
    doctor = db.session.get(User, doctor_id)
    if doctor is None or DOCTOR not in doctor.role_names:
        raise ValidationError("doctor_id must reference a doctor")
    return doctor_id


def _field_updates(data) -> dict:
    fields = {}
    for key, value in data.items():
        if key == "date":
            fields[key] = parse_day(value)
        elif key in ("start_hour", "end_hour", "capacity"):
            fields[key] = as_int(value, key)
        else:
            fields[key] = value
    return fields


# ---------- DOCTOR/ADMIN: create slot ----------
@slots_bp.post("")
@require_roles(DOCTOR)
def create_slot():
    data = json_body()
    missing = [f for f in REQUIRED_FIELDS if data.get(f) in (None, "")]
    if missing:
        return jsonify(error=f"{', '.join(missing)} required", code="VALIDATION_ERROR"), 400

    doctor_id = _doctor_id_for_create(data)
    try:
        slot = slot_store.create_slot(
            doctor_id=doctor_id,
            date=parse_day(data["date"]),
            start_hour=as_int(data["start_hour"], "start_hour"),
            end_hour=as_int(data["end_hour"], "end_hour"),
            capacity=as_int(data["capacity"], "capacity"),
            location=data["location"],
        )
    except Conflict as exc:
        log_event(f"SLOT_FAIL_{exc.code}", user_id=g.user.id, entity="slot", metadata={"doctor_id": doctor_id, "date": data.get("date")})
        raise

    log_event("SLOT_CREATE", user_id=g.user.id, entity="slot", entity_id=slot.id, metadata={"doctor_id": doctor_id})
    return jsonify(slot.to_dict()), 201


# ---------- DOCTOR/ADMIN: view slots ----------
@slots_bp.get("")
@require_roles(DOCTOR)
def list_slots():
    # optional filters: date (YYYY-MM-DD), doctor_id; doctors default to their own slots
    day = optional_day(request.args.get("date"))
    doctor_id = request.args.get("doctor_id")
    if doctor_id not in (None, ""):
        doctor_id = as_int(doctor_id, "doctor_id")
    elif not is_admin():
        doctor_id = g.user.id
    else:
        doctor_id = None

    slots = slot_store.list_slots(date=day, doctor_id=doctor_id)
    return jsonify([s.to_dict() for s in slots]), 200


@slots_bp.get("/<int:slot_id>")
@require_roles(DOCTOR)
def get_slot(slot_id: int):
    # readable clinic-wide, like the list; only changes are owner-scoped
    return jsonify(slot_store.get_slot(slot_id).to_dict()), 200


# ---------- DOCTOR/ADMIN: edit slot (never the booked count) ----------
@slots_bp.patch("/<int:slot_id>")
@require_roles(DOCTOR)
def update_slot(slot_id: int):
    data = json_body()
    if not data:
        return jsonify(error="No fields to update", code="VALIDATION_ERROR"), 400

    slot = owned_slot(slot_id)
    try:
        slot = slot_store.update_slot_fields(slot, **_field_updates(data))
    except Conflict as exc:
        log_event(f"SLOT_FAIL_{exc.code}", user_id=g.user.id, entity="slot", entity_id=slot_id)
        raise

    log_event("SLOT_UPDATE", user_id=g.user.id, entity="slot", entity_id=slot_id, metadata={"fields": sorted(data)})
    return jsonify(slot.to_dict()), 200


# ---------- DOCTOR/ADMIN: delete empty slot ----------
@slots_bp.delete("/<int:slot_id>")
@require_roles(DOCTOR)
def delete_slot(slot_id: int):
    slot = owned_slot(slot_id)
    try:
        slot_store.delete_slot(slot)
    except Conflict as exc:
        log_event(f"SLOT_FAIL_{exc.code}", user_id=g.user.id, entity="slot", entity_id=slot_id)
        raise

    log_event("SLOT_DELETE", user_id=g.user.id, entity="slot", entity_id=slot_id)
    return jsonify(message="Slot deleted successfully"), 200
