"""
Paste access service.
Validates input, allocates ids and turns store results into API-shaped views.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from vanishpaste.database import PasteStore
from vanishpaste.exceptions import (
    DuplicateIdError,
    PasteNotFoundError,
    StorageError,
    ValidationError,
)
from vanishpaste.ids import generate_paste_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedPaste:
    id: str
    url: str


@dataclass(frozen=True)
class FetchedPaste:
    content: str
    remaining_views: Optional[int]
    expires_at: Optional[datetime]

    @property
    def expires_at_iso(self) -> Optional[str]:
        return format_timestamp(self.expires_at)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 in UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def truncate_to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=value.microsecond // 1000 * 1000)


def _validate_positive_int(name: str, value: Any) -> None:
    # bool is an int subclass; reject it explicitly
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(f"{name} must be an integer >= 1")


def validate_paste_input(content: Any, ttl_seconds: Any = None, max_views: Any = None) -> None:
    """
    Check creation input before anything touches storage.

    Raises:
        ValidationError: Describing the first offending field
    """
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required and must be a non-empty string")
    _validate_positive_int("ttl_seconds", ttl_seconds)
    _validate_positive_int("max_views", max_views)


class PasteService:
    """Creates and fetches pastes on top of a PasteStore."""

    def __init__(
        self,
        store: PasteStore,
        base_url: str,
        id_factory: Callable[[], str] = generate_paste_id,
        max_attempts: int = 5,
    ):
        self.store = store
        self.base_url = base_url.rstrip("/")
        self.id_factory = id_factory
        self.max_attempts = max_attempts

    def build_url(self, paste_id: str) -> str:
        return f"{self.base_url}/p/{paste_id}"

    async def create_paste(
        self,
        content: str,
        now: datetime,
        ttl_seconds: Optional[int] = None,
        max_views: Optional[int] = None,
    ) -> CreatedPaste:
        """
        Create a new paste.

        Args:
            content: Text content of the paste
            now: Creation time; expiry is measured from here
            ttl_seconds: Optional time-to-live in seconds
            max_views: Optional maximum view count

        Returns:
            The new paste's id and retrieval URL

        Raises:
            ValidationError: If input is invalid
            StorageError: If the store fails or no free id could be found
        """
        validate_paste_input(content, ttl_seconds, max_views)

        # Stores keep millisecond precision
        now = truncate_to_millis(now)
        expires_at = None
        if ttl_seconds is not None:
            try:
                expires_at = now + timedelta(seconds=ttl_seconds)
            except OverflowError:
                raise ValidationError("ttl_seconds is too large")

        for attempt in range(1, self.max_attempts + 1):
            paste_id = self.id_factory()
            try:
                await self.store.create(
                    paste_id=paste_id,
                    content=content,
                    created_at=now,
                    expires_at=expires_at,
                    max_views=max_views,
                )
            except DuplicateIdError:
                logger.warning(f"Paste id collision on attempt {attempt}, regenerating")
                continue

            logger.info(f"Paste {paste_id} created")
            return CreatedPaste(id=paste_id, url=self.build_url(paste_id))

        raise StorageError(f"Could not allocate a paste id after {self.max_attempts} attempts")

    async def fetch_paste(self, paste_id: str, now: datetime) -> FetchedPaste:
        """
        Fetch a paste, spending one view.

        Raises:
            PasteNotFoundError: If the paste is absent, expired or out of views
            StorageError: If the store fails
        """
        consumed = await self.store.consume(paste_id, now)
        if consumed is None:
            logger.debug(f"Paste {paste_id} unavailable")
            raise PasteNotFoundError()

        return FetchedPaste(
            content=consumed.content,
            remaining_views=consumed.remaining_views,
            expires_at=consumed.expires_at,
        )
