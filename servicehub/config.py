import os
from dotenv import load_dotenv
import logging

load_dotenv()

APP_NAME = os.getenv("APP_NAME", "Santiago Tech RD")

# Public base URL used in notification links
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:8000").rstrip("/")

# Email notifications (SendGrid). Without a key, notifications are logged only.
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
SENDGRID_FROM_EMAIL = os.getenv("SENDGRID_FROM_EMAIL", "no-reply@santiagotech.rd")

# Implicit weekly schedule for technicians with no configured availability rows.
# Monday-Saturday only; Sunday is closed.
DEFAULT_START_TIME = os.getenv("DEFAULT_START_TIME", "08:00")
DEFAULT_END_TIME = os.getenv("DEFAULT_END_TIME", "18:00")

DEFAULT_BOOKING_DURATION = int(os.getenv("DEFAULT_BOOKING_DURATION", "60"))

# Gamification timing windows
QUICK_RESPONSE_WINDOW_MINUTES = int(os.getenv("QUICK_RESPONSE_WINDOW_MINUTES", "60"))
ON_TIME_GRACE_MINUTES = int(os.getenv("ON_TIME_GRACE_MINUTES", "15"))
REDEMPTION_EXPIRY_DAYS = int(os.getenv("REDEMPTION_EXPIRY_DAYS", "30"))

LEADERBOARD_DEFAULT_LIMIT = int(os.getenv("LEADERBOARD_DEFAULT_LIMIT", "10"))
POINTS_HISTORY_DEFAULT_LIMIT = int(os.getenv("POINTS_HISTORY_DEFAULT_LIMIT", "20"))

# Use basic logging here since logging_config may not be loaded yet
_config_logger = logging.getLogger("servicehub.config")

if not SENDGRID_API_KEY:
    _config_logger.warning("SENDGRID_API_KEY is not set. Notifications will be logged instead of emailed.")

if APP_BASE_URL == "http://localhost:8000":
    _config_logger.warning("APP_BASE_URL is not set. Using default http://localhost:8000.")


def get_base_url_from_request(request) -> str:
    """
    Derive the public base URL from the incoming request's Host header.
    Reverse proxies rewrite the host, so the configured APP_BASE_URL can be stale.

    Falls back to APP_BASE_URL if Host header is missing.
    """
    host = request.headers.get("host", "")
    forwarded_proto = request.headers.get("x-forwarded-proto", "")

    if host:
        scheme = forwarded_proto if forwarded_proto else "https"
        return f"{scheme}://{host}"

    return APP_BASE_URL
