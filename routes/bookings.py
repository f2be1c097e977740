from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.booking import BookingStatus
from models.slot import Slot
from routes.slots import owned_slot
from security.rbac import DOCTOR, is_admin, require_roles
from services import booking_lifecycle
from services.errors import BookingNotFound, Conflict, ValidationError
from utils.audit import log_event
from utils.parsing import as_int, json_body, optional_day, require_int

bookings_bp = Blueprint("bookings", __name__, url_prefix="/bookings")


def _owned_booking(booking_id: int):
    booking = booking_lifecycle.get_booking(booking_id)
    slot = db.session.get(Slot, booking.slot_id)
    # a missing slot is left for the lifecycle to report as an integrity fault
    if slot is not None and not is_admin() and slot.doctor_id != g.user.id:
        raise BookingNotFound(booking_id=booking_id)
    return booking


def _audit_failure(action: str, exc: Conflict, entity: str, entity_id=None, **metadata):
    log_event(f"{action}_FAIL_{exc.code}", user_id=g.user.id, entity=entity, entity_id=entity_id, metadata=metadata or None)


def _page_args():
    page = request.args.get("page", default=1, type=int)
    default_limit = current_app.config.get("BOOKINGS_PAGE_SIZE", 10)
    max_limit = current_app.config.get("BOOKINGS_MAX_PAGE_SIZE", 100)
    limit = request.args.get("limit", default=default_limit, type=int)
    return max(page, 1), min(max(limit, 1), max_limit)


# ---------- DOCTOR/ADMIN: book a patient into a slot ----------
@bookings_bp.post("")
@require_roles(DOCTOR)
def create_booking():
    data = json_body()
    slot_id = require_int(data, "slot_id")

    patient_id = data.get("patient_id")
    patient_data = data.get("patient_data")
    if patient_id in (None, "") and not patient_data:
        return jsonify(error="patient_id or patient_data is required", code="VALIDATION_ERROR"), 400
    if patient_id not in (None, "") and patient_data:
        return jsonify(error="Send either patient_id or patient_data, not both", code="VALIDATION_ERROR"), 400

    owned_slot(slot_id)
    try:
        booking = booking_lifecycle.create_booking(
            slot_id=slot_id,
            reason=data.get("reason"),
            patient_id=as_int(patient_id, "patient_id") if patient_id not in (None, "") else None,
            patient_data=patient_data or None,
            status=data.get("status") or BookingStatus.PENDING,
        )
    except Conflict as exc:
        _audit_failure("BOOKING", exc, "slot", slot_id, patient_id=patient_id)
        raise

    log_event(
        "BOOKING_CREATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking.id,
        metadata={"slot_id": slot_id, "patient_id": booking.patient_id, "status": booking.status},
    )
    return jsonify(booking.to_dict()), 201


# ---------- DOCTOR/ADMIN: list bookings ----------
@bookings_bp.get("")
@require_roles(DOCTOR)
def list_bookings():
    # optional filters: slot_id, status, start_date/end_date (slot day), search (patient name/number)
    slot_id = request.args.get("slot_id")
    page, limit = _page_args()

    items, pagination = booking_lifecycle.list_bookings(
        slot_id=as_int(slot_id, "slot_id") if slot_id not in (None, "") else None,
        status=request.args.get("status") or None,
        start_date=optional_day(request.args.get("start_date"), "start_date"),
        end_date=optional_day(request.args.get("end_date"), "end_date"),
        search=request.args.get("search"),
        doctor_id=None if is_admin() else g.user.id,
        page=page,
        limit=limit,
    )
    return jsonify(data=[b.to_dict() for b in items], pagination=pagination), 200


@bookings_bp.get("/<int:booking_id>")
@require_roles(DOCTOR)
def get_booking(booking_id: int):
    return jsonify(_owned_booking(booking_id).to_dict()), 200


# ---------- DOCTOR/ADMIN: status transitions ----------
@bookings_bp.patch("/<int:booking_id>")
@require_roles(DOCTOR)
def update_booking_status(booking_id: int):
    data = json_body()
    status = data.get("status")
    if not status:
        return jsonify(error="status is required", code="VALIDATION_ERROR"), 400

    booking = _owned_booking(booking_id)
    old_status = booking.status
    try:
        booking = booking_lifecycle.update_booking_status(booking_id, status)
    except Conflict as exc:
        _audit_failure("BOOKING_STATUS", exc, "booking", booking_id, status=status)
        raise

    if booking.status == old_status:
        return jsonify(booking.to_dict()), 200

    log_event(
        "BOOKING_STATUS_UPDATE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking_id,
        metadata={"from": old_status, "to": booking.status},
    )
    return jsonify(booking.to_dict()), 200


# ---------- DOCTOR/ADMIN: delete booking ----------
@bookings_bp.delete("/<int:booking_id>")
@require_roles(DOCTOR)
def delete_booking(booking_id: int):
    _owned_booking(booking_id)
    try:
        booking_lifecycle.delete_booking(booking_id)
    except Conflict as exc:
        _audit_failure("BOOKING_DELETE", exc, "booking", booking_id)
        raise

    log_event("BOOKING_DELETE", user_id=g.user.id, entity="booking", entity_id=booking_id)
    return jsonify(message="Booking deleted successfully"), 200


# ---------- DOCTOR/ADMIN: reschedule ----------
@bookings_bp.post("/<int:booking_id>/reschedule")
@require_roles(DOCTOR)
def reschedule_booking(booking_id: int):
    data = json_body()
    new_slot_id = require_int(data, "new_slot_id")

    booking = _owned_booking(booking_id)
    old_slot_id = booking.slot_id
    owned_slot(new_slot_id)
    try:
        booking = booking_lifecycle.reschedule_booking(booking_id, new_slot_id)
    except Conflict as exc:
        _audit_failure("BOOKING_RESCHEDULE", exc, "booking", booking_id, new_slot_id=new_slot_id)
        raise

    log_event(
        "BOOKING_RESCHEDULE",
        user_id=g.user.id,
        entity="booking",
        entity_id=booking_id,
        metadata={"old_slot_id": old_slot_id, "new_slot_id": new_slot_id},
    )
    return jsonify(booking.to_dict()), 200


@bookings_bp.post("/reschedule")
@require_roles(DOCTOR)
def reschedule_bookings():
    data = json_body()
    old_slot_id = require_int(data, "old_slot_id")
    new_slot_id = require_int(data, "new_slot_id")
    if old_slot_id == new_slot_id:
        raise ValidationError("Source and destination slots cannot be the same")

    owned_slot(old_slot_id)
    owned_slot(new_slot_id)
    try:
        moved = booking_lifecycle.reschedule_bookings(old_slot_id, new_slot_id)
    except Conflict as exc:
        _audit_failure("BOOKING_RESCHEDULE", exc, "slot", old_slot_id, new_slot_id=new_slot_id)
        raise

    log_event(
        "BOOKING_RESCHEDULE",
        user_id=g.user.id,
        entity="slot",
        entity_id=old_slot_id,
        metadata={"new_slot_id": new_slot_id, "booking_ids": [b.id for b in moved]},
    )
    return jsonify(data=[b.to_dict() for b in moved], moved=len(moved)), 200
