# api/config.py
"""Configuration management for the trip day planner API."""
import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_flask_secret_key():
    """Get Flask secret key from environment, or None if unset."""
    return os.getenv("FLASK_SECRET_KEY")


def get_google_maps_config():
    """Get Google Maps configuration."""
    return {
        "api_key": os.getenv("GOOGLE_MAPS_API_KEY", ""),
        "client_id": os.getenv("maps_client_id", ""),
        "client_secret": os.getenv("maps_client_secret", "")
    }


def get_geocoding_config():
    """Get geocoding retry configuration."""
    return {
        "max_attempts": int(os.getenv("GEOCODE_MAX_ATTEMPTS", "3")),
        "language": os.getenv("GEOCODE_LANGUAGE", "en"),
    }


def get_port():
    """Get port configuration."""
    return int(os.getenv("PORT", 5000))


def get_reconcile_config():
    """Get day allocation / selection reconciliation configuration."""
    return {
        # Lockout after a committed mutation during which the same action is ignored
        "debounce_ms": int(os.getenv("RECONCILE_DEBOUNCE_MS", "150")),
        # A lone destination takes every night of the trip
        "auto_fill_single": _env_flag("AUTO_FILL_SINGLE_DESTINATION", True),
    }


def get_trip_session_config():
    """Get trip session lifecycle configuration."""
    return {
        "session_timeout_seconds": int(os.getenv("TRIP_SESSION_TIMEOUT_SECONDS", "3600")),
        "max_sessions": int(os.getenv("MAX_TRIP_SESSIONS", "500")),
        "cleanup_interval_seconds": int(os.getenv("TRIP_SESSION_CLEANUP_INTERVAL", "30")),
    }


def get_websocket_config():
    """Get WebSocket configuration."""
    return {
        "ping_interval": int(os.getenv("WEBSOCKET_PING_INTERVAL", "25")),
        "ping_timeout": int(os.getenv("WEBSOCKET_PING_TIMEOUT", "60")),
        "cors_allowed_origins": os.getenv("WEBSOCKET_CORS_ORIGINS", "*").split(",")
    }


def validate_reconcile_config():
    """Validate reconciliation configuration is within sane bounds."""
    config = get_reconcile_config()

    if not 0 <= config["debounce_ms"] <= 1000:
        raise ValueError("RECONCILE_DEBOUNCE_MS must be between 0 and 1000")

    session_config = get_trip_session_config()
    if session_config["max_sessions"] < 1:
        raise ValueError("MAX_TRIP_SESSIONS must be at least 1")

    return True
