"""HTTP tests for /slots."""
import pytest

from models import db
from models.audit_log import AuditLog
from models.slot import Slot
from services import booking_lifecycle

SLOT_BODY = {"date": "2026-11-02", "start_hour": 9, "end_hour": 10, "capacity": 2, "location": "Room 1"}


def actions():
    return [row.action for row in AuditLog.query.order_by(AuditLog.id.asc()).all()]


class TestCreateSlotRoute:
    """POST /slots."""

    def test_create(self, client, doctor, doctor_headers):
        """A doctor creates a slot for themselves."""
        resp = client.post("/slots", json=SLOT_BODY, headers=doctor_headers)

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["doctor_id"] == doctor.id
        assert body["date"] == "2026-11-02"
        assert body["booked_count"] == 0
        assert body["available"] == 2
        assert "SLOT_CREATE" in actions()

    def test_iso_timestamp_date(self, client, doctor_headers):
        """A full timestamp is reduced to its day."""
        resp = client.post("/slots", json=dict(SLOT_BODY, date="2026-11-02T15:45:00Z"), headers=doctor_headers)

        assert resp.status_code == 201
        assert resp.get_json()["date"] == "2026-11-02"

    def test_duplicate(self, client, doctor_headers):
        """The same window twice is a 409 and is audited."""
        client.post("/slots", json=SLOT_BODY, headers=doctor_headers)
        resp = client.post("/slots", json=SLOT_BODY, headers=doctor_headers)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "DUPLICATE_SLOT"
        assert "SLOT_FAIL_DUPLICATE_SLOT" in actions()

    def test_missing_fields(self, client, doctor_headers):
        """Every field is required."""
        resp = client.post("/slots", json={"date": "2026-11-02"}, headers=doctor_headers)

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "VALIDATION_ERROR"
        assert "start_hour" in body["error"]

    @pytest.mark.parametrize("body", [[1, 2], "slot", 7])
    def test_non_object_body(self, client, doctor_headers, body):
        """JSON that is not an object is rejected as a validation error."""
        resp = client.post("/slots", json=body, headers=doctor_headers)

        assert resp.status_code == 400
        assert resp.get_json() == {"error": "JSON object body required", "code": "VALIDATION_ERROR"}
        assert Slot.query.count() == 0

    @pytest.mark.parametrize(
        "override,code",
        [
            ({"start_hour": 10, "end_hour": 9}, "INVALID_RANGE"),
            ({"end_hour": 24}, "INVALID_RANGE"),
            ({"capacity": 0}, "INVALID_CAPACITY"),
            ({"capacity": "two"}, "VALIDATION_ERROR"),
            ({"date": "02/11/2026"}, "VALIDATION_ERROR"),
        ],
    )
    def test_invalid_values(self, client, doctor_headers, override, code):
        """Bad values come back as 400 with a specific code."""
        resp = client.post("/slots", json=dict(SLOT_BODY, **override), headers=doctor_headers)

        assert resp.status_code == 400
        assert resp.get_json()["code"] == code
        assert Slot.query.count() == 0

    def test_admin_creates_for_doctor(self, client, doctor, admin_headers):
        """Admins may create a slot on a doctor's behalf."""
        resp = client.post("/slots", json=dict(SLOT_BODY, doctor_id=doctor.id), headers=admin_headers)

        assert resp.status_code == 201
        assert resp.get_json()["doctor_id"] == doctor.id

    def test_admin_target_must_be_doctor(self, client, admin, admin_headers):
        """doctor_id must reference a user with the doctor role."""
        resp = client.post("/slots", json=dict(SLOT_BODY, doctor_id=admin.id), headers=admin_headers)

        assert resp.status_code == 400

    def test_doctor_cannot_create_for_colleague(self, client, doctor, other_doctor, doctor_headers):
        """A doctor's doctor_id is ignored."""
        resp = client.post("/slots", json=dict(SLOT_BODY, doctor_id=other_doctor.id), headers=doctor_headers)

        assert resp.status_code == 201
        assert resp.get_json()["doctor_id"] == doctor.id


class TestReadSlots:
    """GET /slots and /slots/<id>."""

    def test_list_defaults_to_own_slots(self, client, make_slot, other_doctor, doctor_headers):
        """Doctors see their own slots unless they ask for another doctor."""
        mine = make_slot(start_hour=9, end_hour=10)
        theirs = make_slot(start_hour=9, end_hour=10, doctor_id=other_doctor.id)

        resp = client.get("/slots", headers=doctor_headers)
        assert [s["id"] for s in resp.get_json()] == [mine.id]

        resp = client.get(f"/slots?doctor_id={other_doctor.id}&date=2026-11-02", headers=doctor_headers)
        assert [s["id"] for s in resp.get_json()] == [theirs.id]

    def test_admin_lists_all(self, client, make_slot, other_doctor, admin_headers):
        """Admins see every doctor's slots."""
        make_slot()
        make_slot(doctor_id=other_doctor.id)

        resp = client.get("/slots", headers=admin_headers)

        assert len(resp.get_json()) == 2

    def test_get_one(self, client, make_slot, doctor_headers):
        """A single slot by id."""
        slot = make_slot(capacity=4)

        resp = client.get(f"/slots/{slot.id}", headers=doctor_headers)

        assert resp.status_code == 200
        assert resp.get_json()["capacity"] == 4

    def test_get_missing(self, client, doctor_headers):
        """Unknown ids are 404."""
        resp = client.get("/slots/999", headers=doctor_headers)

        assert resp.status_code == 404
        assert resp.get_json() == {"error": "Slot not found", "code": "SLOT_NOT_FOUND"}

    def test_colleague_reads_but_cannot_change(self, client, make_slot, other_doctor_headers):
        """Another doctor's slot is readable by id, while edits and deletes report it as missing."""
        slot = make_slot(capacity=3)

        resp = client.get(f"/slots/{slot.id}", headers=other_doctor_headers)
        assert resp.status_code == 200
        assert resp.get_json()["capacity"] == 3

        assert client.patch(f"/slots/{slot.id}", json={"capacity": 5}, headers=other_doctor_headers).status_code == 404
        assert client.delete(f"/slots/{slot.id}", headers=other_doctor_headers).status_code == 404
        db.session.expire_all()
        assert db.session.get(Slot, slot.id).capacity == 3


class TestUpdateSlotRoute:
    """PATCH /slots/<id>."""

    def test_update(self, client, make_slot, doctor_headers):
        """Editable fields change and booked_count stays."""
        slot = make_slot(capacity=2)

        resp = client.patch(f"/slots/{slot.id}", json={"capacity": 5, "location": "Room 7"}, headers=doctor_headers)

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["capacity"] == 5
        assert body["location"] == "Room 7"
        assert body["booked_count"] == 0

    def test_booked_count_not_editable(self, client, make_slot, doctor_headers):
        """booked_count in the body is refused."""
        slot = make_slot()

        resp = client.patch(f"/slots/{slot.id}", json={"booked_count": 1}, headers=doctor_headers)

        assert resp.status_code == 400
        db.session.expire_all()
        assert db.session.get(Slot, slot.id).booked_count == 0

    def test_capacity_below_booked(self, client, make_slot, make_patient, doctor_headers):
        """Lowering capacity under booked seats is 400."""
        slot = make_slot(capacity=2)
        booking_lifecycle.create_booking(slot.id, patient_id=make_patient().id)
        booking_lifecycle.create_booking(slot.id, patient_id=make_patient().id)

        resp = client.patch(f"/slots/{slot.id}", json={"capacity": 1}, headers=doctor_headers)

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "INVALID_CAPACITY"

    def test_empty_body(self, client, make_slot, doctor_headers):
        """An empty update is 400."""
        slot = make_slot()

        resp = client.patch(f"/slots/{slot.id}", json={}, headers=doctor_headers)

        assert resp.status_code == 400

    def test_other_doctors_slot_is_hidden(self, client, make_slot, other_doctor_headers):
        """Editing a colleague's slot looks like a missing slot."""
        slot = make_slot()

        resp = client.patch(f"/slots/{slot.id}", json={"capacity": 3}, headers=other_doctor_headers)

        assert resp.status_code == 404


class TestDeleteSlotRoute:
    """DELETE /slots/<id>."""

    def test_delete(self, client, make_slot, doctor_headers):
        """An empty slot is removed."""
        slot = make_slot()
        slot_id = slot.id

        resp = client.delete(f"/slots/{slot_id}", headers=doctor_headers)

        assert resp.status_code == 200
        assert resp.get_json()["message"] == "Slot deleted successfully"
        assert db.session.get(Slot, slot_id) is None
        assert "SLOT_DELETE" in actions()

    def test_delete_with_bookings(self, client, make_slot, make_patient, doctor_headers):
        """A booked slot cannot be deleted."""
        slot = make_slot()
        booking_lifecycle.create_booking(slot.id, patient_id=make_patient().id)

        resp = client.delete(f"/slots/{slot.id}", headers=doctor_headers)

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SLOT_HAS_BOOKINGS"
        assert db.session.get(Slot, slot.id) is not None
