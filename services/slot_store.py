"""
Capacity ledger for bookable slots.

`increment_booked_count` / `decrement_booked_count` are the only writers of
`Slot.booked_count` and are called only from services.booking_lifecycle.
Neither commits: they run inside the caller's transaction so the booking row
and the counter change land together.
"""
import logging
from datetime import date as calendar_date, datetime

from sqlalchemy import delete, select, update

from models import db
from models.booking import BookingRequest, BookingStatus
from models.slot import Slot
from services.errors import (
    DuplicateSlot,
    InvalidCapacity,
    InvalidRange,
    SlotFull,
    SlotHasBookings,
    SlotNotFound,
    ValidationError,
)
from services.tx import transaction

logger = logging.getLogger(__name__)

MIN_HOUR = 0
MAX_HOUR = 23
EDITABLE_FIELDS = ("date", "start_hour", "end_hour", "capacity", "location")


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _as_day(value) -> calendar_date:
    # time of day never takes part in slot identity
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, calendar_date):
        return value
    raise ValidationError("date must be a calendar date")


def _validate_window(start_hour, end_hour):
    for name, value in (("start_hour", start_hour), ("end_hour", end_hour)):
        if not _is_int(value) or not MIN_HOUR <= value <= MAX_HOUR:
            raise InvalidRange(f"{name} must be an integer between {MIN_HOUR} and {MAX_HOUR}")
    if end_hour <= start_hour:
        raise InvalidRange()


def _validate_capacity(capacity):
    if not _is_int(capacity) or capacity < 1:
        raise InvalidCapacity()


def _clean_location(location) -> str:
    if not isinstance(location, str) or not location.strip():
        raise ValidationError("location is required")
    return location.strip()


def _window_taken(doctor_id, day, start_hour, end_hour, exclude_id=None) -> bool:
    q = Slot.query.filter_by(doctor_id=doctor_id, date=day, start_hour=start_hour, end_hour=end_hour)
    if exclude_id is not None:
        q = q.filter(Slot.id != exclude_id)
    return q.first() is not None


def get_slot(slot_id) -> Slot:
    slot = db.session.get(Slot, slot_id) if slot_id is not None else None
    if slot is None:
        raise SlotNotFound(slot_id=slot_id)
    return slot


def list_slots(date=None, doctor_id=None):
    q = Slot.query
    if doctor_id is not None:
        q = q.filter(Slot.doctor_id == doctor_id)
    if date is not None:
        q = q.filter(Slot.date == _as_day(date))
    return q.order_by(Slot.date.asc(), Slot.start_hour.asc()).all()


def create_slot(doctor_id, date, start_hour, end_hour, capacity, location) -> Slot:
    day = _as_day(date)
    _validate_window(start_hour, end_hour)
    _validate_capacity(capacity)
    location = _clean_location(location)

    context = dict(doctor_id=doctor_id, date=day.isoformat(), start_hour=start_hour, end_hour=end_hour)
    if _window_taken(doctor_id, day, start_hour, end_hour):
        raise DuplicateSlot(**context)

    slot = Slot(
        doctor_id=doctor_id,
        date=day,
        start_hour=start_hour,
        end_hour=end_hour,
        capacity=capacity,
        location=location,
        booked_count=0,
    )
    # the unique constraint still catches a concurrent insert of the same window
    with transaction("create_slot", conflict=DuplicateSlot, **context):
        db.session.add(slot)

    logger.info("Slot %s created: doctor %s %s %s-%s capacity %s", slot.id, doctor_id, day, start_hour, end_hour, capacity)
    return slot


def can_accept_booking(slot: Slot) -> bool:
    return slot.booked_count < slot.capacity


def increment_booked_count(slot: Slot) -> Slot:
    """
    Take one seat. The capacity check and the increment are one UPDATE, so
    concurrent callers can never push booked_count past capacity.
    Raises SlotFull when no row qualified.
    """
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot.id, Slot.booked_count < Slot.capacity)
        .values(booked_count=Slot.booked_count + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise SlotFull(slot_id=slot.id)

    db.session.refresh(slot)
    logger.debug("Slot %s booked_count -> %s/%s", slot.id, slot.booked_count, slot.capacity)
    return slot


def decrement_booked_count(slot: Slot) -> Slot:
    """Release one seat. Floors at zero and never raises."""
    result = db.session.execute(
        update(Slot)
        .where(Slot.id == slot.id, Slot.booked_count > 0)
        .values(booked_count=Slot.booked_count - 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning("Slot %s already has no booked seats, decrement ignored", slot.id)

    db.session.refresh(slot)
    logger.debug("Slot %s booked_count -> %s/%s", slot.id, slot.booked_count, slot.capacity)
    return slot


def update_slot_fields(slot: Slot, **fields) -> Slot:
    """
    Edit date, hours, capacity or location. booked_count is not editable here.
    Lowering capacity below the seats already taken raises InvalidCapacity.
    """
    unknown = set(fields) - set(EDITABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Cannot update field(s): {', '.join(sorted(unknown))}")

    day = _as_day(fields["date"]) if "date" in fields else slot.date
    start_hour = fields.get("start_hour", slot.start_hour)
    end_hour = fields.get("end_hour", slot.end_hour)
    _validate_window(start_hour, end_hour)

    changes = {}
    if day != slot.date:
        changes["date"] = day
    if start_hour != slot.start_hour:
        changes["start_hour"] = start_hour
    if end_hour != slot.end_hour:
        changes["end_hour"] = end_hour
    if "capacity" in fields:
        _validate_capacity(fields["capacity"])
        if fields["capacity"] != slot.capacity:
            changes["capacity"] = fields["capacity"]
    if "location" in fields:
        location = _clean_location(fields["location"])
        if location != slot.location:
            changes["location"] = location

    if not changes:
        return slot

    window_changed = {"date", "start_hour", "end_hour"} & set(changes)
    if window_changed and _window_taken(slot.doctor_id, day, start_hour, end_hour, exclude_id=slot.id):
        raise DuplicateSlot(slot_id=slot.id, date=day.isoformat(), start_hour=start_hour, end_hour=end_hour)

    stmt = update(Slot).where(Slot.id == slot.id)
    if "capacity" in changes:
        stmt = stmt.where(Slot.booked_count <= changes["capacity"])

    slot_id = slot.id
    with transaction("update_slot_fields", conflict=DuplicateSlot, slot_id=slot_id):
        result = db.session.execute(
            stmt.values(updated_at=datetime.utcnow(), **changes).execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            booked = db.session.execute(select(Slot.booked_count).where(Slot.id == slot_id)).scalar()
            if booked is None:
                raise SlotNotFound(slot_id=slot_id)
            raise InvalidCapacity(
                f"capacity cannot be lower than the {booked} seat(s) already booked",
                slot_id=slot_id,
            )

    db.session.refresh(slot)
    logger.info("Slot %s updated: %s", slot_id, sorted(changes))
    return slot


def delete_slot(slot: Slot) -> None:
    """
    Remove an empty slot. A slot with any booked seat raises SlotHasBookings.
    Rejected requests are the only bookings an empty slot can still have;
    they go with it.
    """
    slot_id = slot.id
    with transaction("delete_slot", conflict=SlotHasBookings, slot_id=slot_id):
        db.session.execute(
            delete(BookingRequest)
            .where(BookingRequest.slot_id == slot_id, BookingRequest.status == BookingStatus.REJECTED)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(
            delete(Slot)
            .where(Slot.id == slot_id, Slot.booked_count == 0)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SlotHasBookings(slot_id=slot_id, booked_count=slot.booked_count)

    db.session.expunge(slot)
    logger.info("Slot %s deleted", slot_id)
