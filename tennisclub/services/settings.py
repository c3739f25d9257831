from __future__ import annotations
import logging
from .exceptions import ServiceError
from .. import storage
from ..models import Settings

logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    return storage.load_settings()


def update_settings(
    allow_registration: bool | None = None,
    match_approval_required: bool | None = None,
    max_matches_per_day: int | None = None,
) -> Settings:
    """Apply the given changes and persist them."""
    settings = storage.load_settings()
    if allow_registration is not None:
        settings.allow_registration = allow_registration
    if match_approval_required is not None:
        settings.match_approval_required = match_approval_required
    if max_matches_per_day is not None:
        if max_matches_per_day < 0:
            raise ServiceError("max_matches_per_day cannot be negative", 400)
        settings.max_matches_per_day = max_matches_per_day
    storage.save_settings(settings)
    logger.info("settings updated: %s", settings)
    return settings


def settings_dict(settings: Settings) -> dict[str, object]:
    return {
        "allow_registration": settings.allow_registration,
        "match_approval_required": settings.match_approval_required,
        "max_matches_per_day": settings.max_matches_per_day,
    }
