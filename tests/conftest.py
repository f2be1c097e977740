"""Shared fixtures: in-memory app, clinic users with bearer tokens, slot/patient factories."""
import itertools
from datetime import date

import pytest

from app import create_app
from models import db
from models.user import Role, User
from security.rbac import ADMIN, DOCTOR
from security.session import create_session
from services import patients, slot_store

SLOT_DAY = date(2026, 11, 2)


def make_user(email, *role_names):
    user = User(email=email, full_name=email.split("@")[0])
    for name in role_names:
        user.roles.append(Role.query.filter_by(name=name).one())
    db.session.add(user)
    db.session.commit()
    return user


def bearer(user):
    return {"Authorization": f"Bearer {create_session(user.id)}"}


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "AUTO_CREATE_TABLES": True,
        "LOG_LEVEL": "WARNING",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def doctor(app):
    return make_user("dr.grey@clinic.test", DOCTOR)


@pytest.fixture
def other_doctor(app):
    return make_user("dr.shepherd@clinic.test", DOCTOR)


@pytest.fixture
def admin(app):
    return make_user("admin@clinic.test", ADMIN)


@pytest.fixture
def doctor_headers(doctor):
    return bearer(doctor)


@pytest.fixture
def other_doctor_headers(other_doctor):
    return bearer(other_doctor)


@pytest.fixture
def admin_headers(admin):
    return bearer(admin)


@pytest.fixture
def receptionist_headers(app):
    # signed in, but holds no clinic role
    return bearer(make_user("reception@clinic.test"))


@pytest.fixture
def make_slot(doctor):
    def _make(capacity=1, start_hour=9, end_hour=10, day=SLOT_DAY, location="Room 1", doctor_id=None):
        return slot_store.create_slot(
            doctor_id=doctor_id or doctor.id,
            date=day,
            start_hour=start_hour,
            end_hour=end_hour,
            capacity=capacity,
            location=location,
        )
    return _make


@pytest.fixture
def make_patient(app):
    counter = itertools.count(1)

    def _make(name=None, gender="Female"):
        patient = patients.create_patient({
            "name": name or f"Patient {next(counter)}",
            "dob": "1990-04-02",
            "gender": gender,
        })
        db.session.commit()
        return patient
    return _make
