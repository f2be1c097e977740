from .health import health_bp
from .slots import slots_bp
from .bookings import bookings_bp
