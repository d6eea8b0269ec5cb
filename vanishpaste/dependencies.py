"""
FastAPI dependencies: settings, store, service and reference time per request.
"""
import logging
from functools import partial
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, Header, Request

from vanishpaste.config import Settings
from vanishpaste.database import PasteStore
from vanishpaste.exceptions import StorageError
from vanishpaste.ids import generate_paste_id
from vanishpaste.service import PasteService

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request) -> PasteStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StorageError("Paste store is not initialised")
    return store


def get_base_url(request: Request, settings: Settings = Depends(get_settings)) -> str:
    """APP_DOMAIN if configured, otherwise the scheme and host the client used."""
    if settings.APP_DOMAIN:
        return settings.APP_DOMAIN.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def get_paste_service(
    store: PasteStore = Depends(get_store),
    base_url: str = Depends(get_base_url),
    settings: Settings = Depends(get_settings),
) -> PasteService:
    return PasteService(
        store,
        base_url=base_url,
        id_factory=partial(generate_paste_id, settings.ID_LENGTH),
        max_attempts=settings.ID_MAX_ATTEMPTS,
    )


def get_reference_time(
    settings: Settings = Depends(get_settings),
    x_test_now_ms: Optional[str] = Header(None),
) -> datetime:
    """
    Get current time, honouring x-test-now-ms for deterministic testing.

    The header is only trusted when TEST_MODE is on outside production.

    Args:
        x_test_now_ms: Test timestamp header (milliseconds since epoch)

    Returns:
        Current datetime in UTC
    """
    if settings.reference_time_override_enabled and x_test_now_ms:
        try:
            timestamp_ms = int(x_test_now_ms)
            return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)
        except (ValueError, TypeError, OverflowError, OSError) as e:
            logger.warning(f"Invalid x-test-now-ms header: {e}")

    return datetime.now(timezone.utc)
