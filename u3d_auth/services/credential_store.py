"""Persistence of session credentials and migration of legacy key formats."""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace

from u3d_auth.models import Session
from u3d_auth.services.preferences import PreferenceStore

ID_TOKEN_KEY = "U3D_IdToken"
REFRESH_TOKEN_KEY = "U3D_RefreshToken"
USER_EMAIL_KEY = "U3D_UserEmail"
DISPLAY_NAME_KEY = "U3D_DisplayName"
CREATOR_USERNAME_KEY = "U3D_CreatorUsername"
STAY_LOGGED_IN_KEY = "U3D_StayLoggedIn"
PAYPAL_EMAIL_KEY = "U3D_PayPalEmail"

CREDENTIAL_KEYS = (
    ID_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    USER_EMAIL_KEY,
    DISPLAY_NAME_KEY,
    CREATOR_USERNAME_KEY,
)

LEGACY_SUFFIXES = (
    "idToken",
    "refreshToken",
    "userEmail",
    "displayName",
    "creatorUsername",
    "stayLoggedIn",
    "paypalConnected",
)

logger = logging.getLogger(__name__)


def legacy_paypal_key(email: str) -> str:
    return f"{PAYPAL_EMAIL_KEY}_{email}"


@dataclass(slots=True, frozen=True)
class LegacyKeyScheme:
    """Older releases qualified every key with the host project's identity."""

    company_name: str = ""
    product_name: str = ""

    def prefixes(self) -> tuple[str, ...]:
        return (
            f"U3D_{self.company_name}.{self.product_name}_",
            f"U3D_Creator_{self.company_name}_",
        )


class CredentialStore:
    def __init__(self, preferences: PreferenceStore, *, legacy: LegacyKeyScheme | None = None) -> None:
        self.preferences = preferences
        self.legacy = legacy or LegacyKeyScheme()
        self._loaded: Session | None = None
        self._migrated = False

    @property
    def is_loaded(self) -> bool:
        return self._loaded is not None

    def load(self) -> Session:
        """Read the canonical keys once; later calls return the cached session."""
        if self._loaded is None:
            prefs = self.preferences
            self._loaded = Session(
                id_token=prefs.get_string(ID_TOKEN_KEY),
                refresh_token=prefs.get_string(REFRESH_TOKEN_KEY),
                user_email=prefs.get_string(USER_EMAIL_KEY),
                display_name=prefs.get_string(DISPLAY_NAME_KEY),
                creator_username=prefs.get_string(CREATOR_USERNAME_KEY),
                stay_logged_in=prefs.get_bool(STAY_LOGGED_IN_KEY, True),
            )
            logger.info(
                "Credentials loaded: token=%s email=%s username=%s stay_logged_in=%s",
                bool(self._loaded.id_token),
                self._loaded.user_email,
                self._loaded.creator_username,
                self._loaded.stay_logged_in,
            )
        return replace(self._loaded)

    def save(self, session: Session) -> None:
        """Persist non-empty credential fields when the user opted in; always persist the opt-in flag."""
        if session.stay_logged_in:
            values = {
                ID_TOKEN_KEY: session.id_token,
                REFRESH_TOKEN_KEY: session.refresh_token,
                USER_EMAIL_KEY: session.user_email,
                DISPLAY_NAME_KEY: session.display_name,
                CREATOR_USERNAME_KEY: session.creator_username,
            }
            for key, value in values.items():
                if value:
                    self.preferences.set_string(key, value)
        self.preferences.set_bool(STAY_LOGGED_IN_KEY, session.stay_logged_in)
        self._loaded = replace(session)

    def clear(self) -> None:
        """Delete every credential key; the stay-logged-in preference is kept."""
        self.preferences.delete_keys(list(CREDENTIAL_KEYS))
        if self._loaded is not None:
            self._loaded.clear_credentials()
        logger.info("Stored credentials cleared")

    def stay_logged_in(self) -> bool:
        return self.preferences.get_bool(STAY_LOGGED_IN_KEY, True)

    def set_stay_logged_in(self, value: bool) -> None:
        self.preferences.set_bool(STAY_LOGGED_IN_KEY, value)
        if self._loaded is not None:
            self._loaded.stay_logged_in = value
        if not value:
            self.clear()

    def get_paypal_email(self) -> str:
        return self.preferences.get_string(PAYPAL_EMAIL_KEY)

    def set_paypal_email(self, email: str) -> None:
        if email:
            self.preferences.set_string(PAYPAL_EMAIL_KEY, email)
        else:
            self.preferences.delete_key(PAYPAL_EMAIL_KEY)

    def migrate_legacy_keys(self) -> Session | None:
        """Move project-qualified credentials to the canonical keys.

        Runs once per store instance. Returns the migrated session when
        credentials were carried forward. Failures are logged and never
        raised so startup can continue.
        """
        if self._migrated:
            return None
        self._migrated = True
        try:
            migrated = self._migrate_credentials()
            self._migrate_paypal_email()
        except Exception:  # noqa: BLE001
            logger.exception("Legacy credential migration failed")
            return None
        return migrated

    def _migrate_credentials(self) -> Session | None:
        prefs = self.preferences
        migrated: Session | None = None
        for prefix in self.legacy.prefixes():
            if not prefs.has_key(prefix + "idToken"):
                continue
            if migrated is None and not prefs.get_string(ID_TOKEN_KEY):
                logger.info("Migrating credentials from legacy keys %s*", prefix)
                migrated = Session(
                    id_token=prefs.get_string(prefix + "idToken"),
                    refresh_token=prefs.get_string(prefix + "refreshToken"),
                    user_email=prefs.get_string(prefix + "userEmail"),
                    display_name=prefs.get_string(prefix + "displayName"),
                    creator_username=prefs.get_string(prefix + "creatorUsername"),
                    stay_logged_in=prefs.get_bool(prefix + "stayLoggedIn", True),
                )
                self.save(migrated)
            else:
                logger.info("Discarding stale legacy keys %s*", prefix)
            prefs.delete_keys([prefix + suffix for suffix in LEGACY_SUFFIXES])
        return migrated

    def _migrate_paypal_email(self) -> None:
        prefs = self.preferences
        if prefs.has_key(PAYPAL_EMAIL_KEY):
            return
        candidates = (
            prefs.get_string(USER_EMAIL_KEY),
            prefs.get_string(self.legacy.prefixes()[0] + "userEmail"),
        )
        for email in candidates:
            if not email:
                continue
            old_key = legacy_paypal_key(email)
            paypal_email = prefs.get_string(old_key)
            if paypal_email:
                prefs.set_string(PAYPAL_EMAIL_KEY, paypal_email)
                prefs.delete_key(old_key)
                logger.info("Migrated PayPal email from %s", old_key)
                return
