import logging

import click
import sqlalchemy as sa
from flask import Flask, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from config import Config
from routes import health_bp, slots_bp, bookings_bp

from models import db
from models.user import User, Role
from services import booking_lifecycle
from services.errors import BookingError
from security.rbac import ADMIN, DOCTOR
from security.session import create_session, revoke_all_sessions
from utils.seed import seed_roles
from utils.auth_context import load_current_user

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(slots_bp)
    app.register_blueprint(bookings_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    with app.app_context():
        if app.config.get("AUTO_CREATE_TABLES"):
            db.create_all()
        # Seed default roles at startup (safe & idempotent); a fresh database
        # gets them on the first start after `flask db upgrade`
        if sa.inspect(db.engine).has_table("roles"):
            seed_roles()

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def configure_logging(app):
    level = getattr(logging, app.config.get("LOG_LEVEL", "INFO"), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    app.logger.setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(BookingError)
    def handle_booking_error(exc):
        return jsonify(error=str(exc), code=exc.code), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected(exc):
        if isinstance(exc, HTTPException):
            return jsonify(error=exc.description, code=exc.name.upper().replace(" ", "_")), exc.code
        app.logger.error("Unhandled exception: %s", exc, exc_info=True)
        return jsonify(error="Internal server error. Please try again.", code="INTERNAL_ERROR"), 500

#-------------------------

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.option("--name", default=None, help="Display name")
    @click.option("--role", "roles", multiple=True, type=click.Choice([DOCTOR, ADMIN]), default=[DOCTOR])
    def create_user(email, name, roles):
        """Create a clinic user (doctor by default) or add roles to an existing one."""
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if not user:
            user = User(email=email, full_name=name)
            db.session.add(user)

        for role_name in roles:
            role = Role.query.filter_by(name=role_name).first()
            if not role:
                role = Role(name=role_name)
                db.session.add(role)
            if role not in user.roles:
                user.roles.append(role)
        db.session.commit()

        click.echo(f"{user.email} has roles: {', '.join(sorted(user.role_names))}")

    @app.cli.command("issue-token")
    @click.argument("email")
    @click.option("--label", default="cli")
    def issue_token(email, label):
        """Print a bearer token for a user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")
        click.echo(create_session(user.id, label=label))

    @app.cli.command("revoke-tokens")
    @click.argument("email")
    def revoke_tokens(email):
        """Revoke every bearer token of a user."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            raise click.ClickException("User not found")
        click.echo(f"Revoked {revoke_all_sessions(user.id)} token(s)")

    @app.cli.command("recount-slots")
    def recount_slots():
        """Repair slot booked counts from the bookings that hold a seat."""
        fixed = booking_lifecycle.recount_slots()
        for slot_id, old, new in fixed:
            click.echo(f"slot {slot_id}: {old} -> {new}")
        click.echo(f"{len(fixed)} slot(s) corrected")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
