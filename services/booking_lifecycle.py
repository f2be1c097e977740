"""
Booking request lifecycle.

This module is the only caller of slot_store.increment_booked_count and
slot_store.decrement_booked_count. Every write locates and validates the slot
first, then changes the booking, then reconciles the slot counter, inside a
single transaction.

Seat rule: a booking holds one seat from creation in every status except
Rejected (BookingStatus.holds_capacity). Creating a booking takes a seat,
moving to Rejected or deleting a held booking gives it back, rescheduling
moves it.
"""
import logging
from datetime import datetime

from sqlalchemy import delete, func, or_, update

from models import db
from models.booking import BookingRequest, BookingStatus
from models.patient import Patient
from models.slot import Slot
from services import patients, slot_store
from services.errors import (
    BookingNotFound,
    DuplicateBooking,
    InvalidStatus,
    InvalidTransition,
    SlotFull,
    SlotNotFound,
    ValidationError,
)
from services.tx import transaction

logger = logging.getLogger(__name__)

MAX_REASON_LENGTH = 500


def get_booking(booking_id) -> BookingRequest:
    booking = db.session.get(BookingRequest, booking_id) if booking_id is not None else None
    if booking is None:
        raise BookingNotFound(booking_id=booking_id)
    return booking


def _slot_of(booking: BookingRequest) -> Slot:
    slot = db.session.get(Slot, booking.slot_id)
    if slot is None:
        # the booking was validated against this slot when it was created
        logger.error("Booking %s references missing slot %s", booking.id, booking.slot_id)
        raise SlotNotFound("Associated slot not found", booking_id=booking.id, slot_id=booking.slot_id)
    return slot


def _has_active_booking(slot_id, patient_id) -> bool:
    q = BookingRequest.query.filter(
        BookingRequest.slot_id == slot_id,
        BookingRequest.patient_id == patient_id,
        BookingRequest.status.in_(BookingStatus.ACTIVE),
    )
    return q.first() is not None


def _clean_reason(reason):
    if reason is None:
        return None
    if not isinstance(reason, str):
        raise ValidationError("reason must be text")
    return reason.strip()[:MAX_REASON_LENGTH] or None


def _reconcile(slot: Slot, old_status, new_status):
    """Adjust the slot counter for a booking going old_status -> new_status (None = no booking)."""
    was_held = old_status is not None and BookingStatus.holds_capacity(old_status)
    now_held = new_status is not None and BookingStatus.holds_capacity(new_status)
    if was_held and not now_held:
        slot_store.decrement_booked_count(slot)
    elif now_held and not was_held:
        slot_store.increment_booked_count(slot)


# ---------- create ----------
def create_booking(slot_id, reason=None, patient_id=None, patient_data=None, status=BookingStatus.PENDING) -> BookingRequest:
    if status not in BookingStatus.ALL:
        raise InvalidStatus(status=status)
    if status not in BookingStatus.INITIAL:
        raise InvalidStatus(f"Bookings can only be created as {' or '.join(BookingStatus.INITIAL)}", status=status)
    if patient_id is None and patient_data is None:
        raise ValidationError("patient_id or patient_data is required")
    reason = _clean_reason(reason)

    slot = slot_store.get_slot(slot_id)
    if not slot_store.can_accept_booking(slot):
        raise SlotFull(slot_id=slot.id)

    with transaction("create_booking", conflict=DuplicateBooking, slot_id=slot.id):
        if patient_data is not None:
            patient = patients.create_patient(patient_data)
        else:
            patient = patients.find_patient(patient_id)

        if _has_active_booking(slot.id, patient.id):
            raise DuplicateBooking(slot_id=slot.id, patient_id=patient.id)

        now = datetime.utcnow()
        booking = BookingRequest(
            slot_id=slot.id,
            patient_id=patient.id,
            status=status,
            reason=reason,
            requested_at=now,
            updated_at=now,
        )
        db.session.add(booking)
        db.session.flush()

        # SlotFull here rolls back the booking and any patient registered above
        _reconcile(slot, None, status)

    logger.info(
        "Booking %s created on slot %s for patient %s (%s), slot now %s/%s",
        booking.id, slot.id, booking.patient_id, status, slot.booked_count, slot.capacity,
    )
    return booking


# ---------- status ----------
def update_booking_status(booking_id, new_status) -> BookingRequest:
    booking = get_booking(booking_id)
    slot = _slot_of(booking)
    if new_status not in BookingStatus.ALL:
        raise InvalidStatus(status=new_status)

    old_status = booking.status
    if new_status == old_status:
        return booking
    if not BookingStatus.can_transition(old_status, new_status):
        raise InvalidTransition(
            f"Cannot change booking from {old_status} to {new_status}",
            booking_id=booking.id,
        )

    with transaction("update_booking_status", booking_id=booking.id, slot_id=slot.id):
        # keyed on the old status so two racing transitions reconcile the counter once
        result = db.session.execute(
            update(BookingRequest)
            .where(BookingRequest.id == booking.id, BookingRequest.status == old_status)
            .values(status=new_status, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition("Booking was changed by another request", booking_id=booking.id)
        _reconcile(slot, old_status, new_status)

    db.session.refresh(booking)
    logger.info(
        "Booking %s %s -> %s, slot %s now %s/%s",
        booking.id, old_status, new_status, slot.id, slot.booked_count, slot.capacity,
    )
    return booking


# ---------- delete ----------
def delete_booking(booking_id) -> None:
    booking = get_booking(booking_id)
    slot = _slot_of(booking)

    status = booking.status
    if status not in BookingStatus.ACTIVE:
        raise InvalidTransition(f"{status} bookings cannot be deleted", booking_id=booking.id)

    with transaction("delete_booking", booking_id=booking.id, slot_id=slot.id):
        result = db.session.execute(
            delete(BookingRequest)
            .where(BookingRequest.id == booking.id, BookingRequest.status == status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidTransition("Booking was changed by another request", booking_id=booking.id)
        _reconcile(slot, status, None)

    db.session.expunge(booking)
    logger.info("Booking %s (%s) deleted, slot %s now %s/%s", booking_id, status, slot.id, slot.booked_count, slot.capacity)


# ---------- reschedule ----------
def _move(booking: BookingRequest, source: Slot, target: Slot):
    status = booking.status
    if status not in BookingStatus.ACTIVE:
        raise InvalidTransition(f"{status} bookings cannot be rescheduled", booking_id=booking.id)
    if _has_active_booking(target.id, booking.patient_id):
        raise DuplicateBooking(slot_id=target.id, patient_id=booking.patient_id)

    result = db.session.execute(
        update(BookingRequest)
        .where(
            BookingRequest.id == booking.id,
            BookingRequest.slot_id == source.id,
            BookingRequest.status == status,
        )
        .values(slot_id=target.id, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidTransition("Booking was changed by another request", booking_id=booking.id)

    if BookingStatus.holds_capacity(status):
        slot_store.decrement_booked_count(source)
        slot_store.increment_booked_count(target)


def reschedule_booking(booking_id, new_slot_id) -> BookingRequest:
    booking = get_booking(booking_id)
    source = _slot_of(booking)
    target = slot_store.get_slot(new_slot_id)
    if target.id == source.id:
        raise ValidationError("Source and destination slots cannot be the same")

    with transaction("reschedule_booking", conflict=DuplicateBooking, booking_id=booking.id, slot_id=target.id):
        _move(booking, source, target)

    db.session.refresh(booking)
    logger.info("Booking %s moved from slot %s to slot %s", booking.id, source.id, target.id)
    return booking


def reschedule_bookings(old_slot_id, new_slot_id):
    """
    Move every active booking from one slot to another. Either all of them
    move or none do.
    """
    source = slot_store.get_slot(old_slot_id)
    target = slot_store.get_slot(new_slot_id)
    if target.id == source.id:
        raise ValidationError("Source and destination slots cannot be the same")

    bookings = (
        BookingRequest.query
        .filter(BookingRequest.slot_id == source.id, BookingRequest.status.in_(BookingStatus.ACTIVE))
        .order_by(BookingRequest.requested_at.asc(), BookingRequest.id.asc())
        .all()
    )
    if not bookings:
        return []

    seats_needed = sum(1 for b in bookings if BookingStatus.holds_capacity(b.status))
    if seats_needed > target.available:
        raise SlotFull(
            f"Destination slot has {target.available} seat(s) left, {seats_needed} needed",
            slot_id=target.id,
        )

    with transaction("reschedule_bookings", conflict=DuplicateBooking, slot_id=target.id, source_slot_id=source.id):
        for booking in bookings:
            _move(booking, source, target)

    logger.info("%s booking(s) moved from slot %s to slot %s", len(bookings), source.id, target.id)
    return bookings


# ---------- queries ----------
def list_bookings(
    slot_id=None,
    status=None,
    start_date=None,
    end_date=None,
    search=None,
    doctor_id=None,
    page: int = 1,
    limit: int = 10,
):
    """
    Filtered, newest-first page of bookings. The date range applies to the
    slot date; `search` matches a patient name fragment or patient number.
    Returns (items, pagination).
    """
    if status is not None and status not in BookingStatus.ALL:
        raise InvalidStatus(status=status)
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    q = (
        BookingRequest.query
        .join(Slot, BookingRequest.slot_id == Slot.id)
        .join(Patient, BookingRequest.patient_id == Patient.id)
    )
    if doctor_id is not None:
        q = q.filter(Slot.doctor_id == doctor_id)
    if slot_id is not None:
        q = q.filter(BookingRequest.slot_id == slot_id)
    if status is not None:
        q = q.filter(BookingRequest.status == status)
    if start_date is not None:
        q = q.filter(Slot.date >= start_date)
    if end_date is not None:
        q = q.filter(Slot.date <= end_date)

    term = (search or "").strip()
    if term:
        conditions = [Patient.name.ilike(f"%{term}%")]
        if term.isdigit():
            conditions.append(Patient.patient_number == int(term))
        q = q.filter(or_(*conditions))

    q = q.order_by(BookingRequest.requested_at.desc(), BookingRequest.id.desc())
    result = q.paginate(page=page, per_page=limit, error_out=False)

    return result.items, {
        "total": result.total,
        "page": page,
        "limit": limit,
        "pages": result.pages,
    }


# ---------- maintenance ----------
def recount_slots():
    """
    Recompute every slot's booked_count from the bookings that hold a seat.
    Returns (slot_id, old_count, new_count) for each slot that was corrected.
    """
    held = dict(
        db.session.query(BookingRequest.slot_id, func.count(BookingRequest.id))
        .filter(BookingRequest.status != BookingStatus.REJECTED)
        .group_by(BookingRequest.slot_id)
        .all()
    )

    fixed = []
    with transaction("recount_slots"):
        for slot in Slot.query.order_by(Slot.id.asc()).all():
            expected = held.get(slot.id, 0)
            if slot.booked_count == expected:
                continue
            if expected > slot.capacity:
                logger.error(
                    "Slot %s has %s seat-holding bookings but capacity %s, left unchanged",
                    slot.id, expected, slot.capacity,
                )
                continue

            result = db.session.execute(
                update(Slot)
                .where(Slot.id == slot.id, Slot.booked_count == slot.booked_count)
                .values(booked_count=expected, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                fixed.append((slot.id, slot.booked_count, expected))

    for slot_id, old, new in fixed:
        logger.warning("Slot %s booked_count corrected %s -> %s", slot_id, old, new)
    return fixed
