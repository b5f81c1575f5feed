"""Server-side state for the promo banner and cookie-consent partials.

Both read and write through a ``PreferenceStore`` so the same code runs
against request cookies in the app and an in-memory dict in tests.
"""
import json
import random
from typing import Callable, Optional, Protocol

import structlog
from fastapi import Request, Response
from pydantic import ValidationError

from schemas import CookiePreferences

logger = structlog.get_logger(__name__)

PROMO_BANNER_KEY = "promo-banner-dismissed"
COOKIE_CONSENT_KEY = "cookie-consent"
PREFERENCE_MAX_AGE = 60 * 60 * 24 * 365

PROMO_MESSAGES = [
    "Need a quick page clone?",
    "Clone GHL funnels & websites instantly!",
    "Save hours duplicating client setups.",
    "Managing multiple GHL clients? Clone pages in seconds.",
    "Stop rebuilding funnels from scratch.",
]
PROMO_LINK = "https://supercloner.app/?ref=3nojbk"


class PreferenceStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class InMemoryPreferenceStore:
    def __init__(self, initial: Optional[dict[str, str]] = None):
        self.values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    def set(self, key: str, value: str) -> None:
        self.values[key] = value


class CookiePreferenceStore:
    """Reads request cookies; writes are queued until ``apply(response)``."""

    def __init__(self, request: Request):
        self._cookies = dict(request.cookies)
        self._pending: dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._pending.get(key, self._cookies.get(key))

    def set(self, key: str, value: str) -> None:
        self._pending[key] = value

    def apply(self, response: Response) -> Response:
        for key, value in self._pending.items():
            response.set_cookie(
                key,
                value,
                max_age=PREFERENCE_MAX_AGE,
                httponly=False,
                samesite="lax",
            )
        return response


def get_preference_store(request: Request) -> CookiePreferenceStore:
    return CookiePreferenceStore(request)


class PromoBanner:
    def __init__(
        self,
        store: PreferenceStore,
        messages: Optional[list[str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.messages = messages or PROMO_MESSAGES
        self.rng = rng or random.Random()
        self.link = PROMO_LINK

    @property
    def is_dismissed(self) -> bool:
        return self.store.get(PROMO_BANNER_KEY) == "true"

    def dismiss(self) -> None:
        self.store.set(PROMO_BANNER_KEY, "true")

    def pick_message(self) -> str:
        return self.rng.choice(self.messages)


class CookieSettingsController:
    """Owns cookie-consent preferences and the "open settings" action.

    Templates receive an instance explicitly; listeners subscribe with
    ``on_open`` and are notified by ``open_settings``.
    """

    def __init__(self, store: PreferenceStore):
        self.store = store
        self._open_callbacks: list[Callable[[], None]] = []
        self.settings_open = False

    @property
    def has_consent(self) -> bool:
        return self.store.get(COOKIE_CONSENT_KEY) is not None

    @property
    def needs_banner(self) -> bool:
        return self.settings_open or not self.has_consent

    def load(self) -> CookiePreferences:
        raw = self.store.get(COOKIE_CONSENT_KEY)
        if not raw:
            return CookiePreferences()
        try:
            return CookiePreferences.model_validate(json.loads(raw))
        except (ValueError, ValidationError):
            logger.warning("Failed to parse cookie consent")
            return CookiePreferences()

    def save(self, analytics: bool, marketing: bool) -> CookiePreferences:
        preferences = CookiePreferences(analytics=analytics, marketing=marketing)
        self.store.set(COOKIE_CONSENT_KEY, preferences.model_dump_json())
        self.settings_open = False
        return preferences

    def accept_all(self) -> CookiePreferences:
        return self.save(analytics=True, marketing=True)

    def reject_all(self) -> CookiePreferences:
        return self.save(analytics=False, marketing=False)

    def on_open(self, callback: Callable[[], None]) -> None:
        self._open_callbacks.append(callback)

    def open_settings(self) -> None:
        self.settings_open = True
        for callback in self._open_callbacks:
            callback()
