"""Bearer-token authentication, role checks and app-level responses."""
from datetime import datetime, timedelta

from models import db
from models.session import Session
from security.session import revoke_all_sessions


def test_health(client):
    """Health check reports the database connection."""
    resp = client.get("/health")

    assert resp.status_code == 200
    assert resp.get_json()["status"] == "ok"
    assert resp.headers["X-Content-Type-Options"] == "nosniff"


def test_missing_token(client):
    """Protected routes need a bearer token."""
    resp = client.get("/slots")

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "AUTH_REQUIRED"


def test_unknown_token(client):
    """A made-up token is not a session."""
    resp = client.get("/slots", headers={"Authorization": "Bearer not-a-real-token"})

    assert resp.status_code == 401


def test_revoked_token(client, doctor, doctor_headers):
    """Revoked tokens stop working."""
    assert client.get("/slots", headers=doctor_headers).status_code == 200

    assert revoke_all_sessions(doctor.id) == 1

    assert client.get("/slots", headers=doctor_headers).status_code == 401


def test_expired_token(client, doctor, doctor_headers):
    """Tokens past their expiry are refused."""
    row = Session.query.filter_by(user_id=doctor.id).one()
    row.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.session.commit()

    assert client.get("/slots", headers=doctor_headers).status_code == 401


def test_idle_token(app, client, doctor, doctor_headers):
    """Tokens unused for longer than the idle timeout are refused."""
    row = Session.query.filter_by(user_id=doctor.id).one()
    row.last_seen_at = datetime.utcnow() - timedelta(seconds=app.config["IDLE_TIMEOUT_SECONDS"] + 5)
    db.session.commit()

    assert client.get("/slots", headers=doctor_headers).status_code == 401


def test_inactive_user(client, doctor, doctor_headers):
    """Deactivated users are treated as anonymous."""
    doctor.is_active = False
    db.session.commit()

    assert client.get("/slots", headers=doctor_headers).status_code == 401


def test_user_without_role(client, receptionist_headers):
    """Authenticated users without a clinic role get 403."""
    resp = client.get("/bookings", headers=receptionist_headers)

    assert resp.status_code == 403
    assert resp.get_json()["code"] == "FORBIDDEN"


def test_unknown_route_is_json(client):
    """Werkzeug HTTP errors are rendered as JSON."""
    resp = client.get("/nowhere")

    assert resp.status_code == 404
    assert resp.get_json()["code"] == "NOT_FOUND"
