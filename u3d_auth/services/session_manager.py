"""Session lifecycle: login, registration, refresh, validation and logout."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any

from u3d_auth.api.client import ResilientRpcClient
from u3d_auth.api.errors import (
    ApiError,
    ApplicationError,
    ConfigurationError,
    CredentialError,
    TransientNetworkError,
)
from u3d_auth.api.identity import IdentityClient, TokenGrant
from u3d_auth.api.transport import HttpTransport
from u3d_auth.models import RetryPolicy, Session, UsernameCheck, UserProfile
from u3d_auth.services.config_resolver import ConfigurationResolver
from u3d_auth.services.credential_store import CredentialStore

PROFILE_FUNCTION = "getUserProfile"
USERNAME_CHECK_FUNCTION = "checkUsernameAvailability"
RESERVE_USERNAME_FUNCTION = "reserveUsername"

logger = logging.getLogger(__name__)


class SessionManager:
    """Owns the in-memory :class:`Session` and is the only place that mutates it.

    State-mutating operations hold a re-entrant lock for their whole call
    chain, so validate -> refresh -> retried probe never interleaves with a
    concurrent login or logout. Plain getters read the current session
    without locking.
    """

    def __init__(
        self,
        *,
        transport: HttpTransport,
        credential_store: CredentialStore,
        resolver: ConfigurationResolver,
        identity: IdentityClient,
        rpc: ResilientRpcClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.transport = transport
        self.credential_store = credential_store
        self.resolver = resolver
        self.identity = identity
        self.rpc = rpc or ResilientRpcClient(
            transport,
            endpoint_for=resolver.function_endpoint,
            token_provider=lambda: self._session.id_token,
            retry_policy=retry_policy,
        )
        self._session = Session()
        self._lock = threading.RLock()
        self._opened = False

    # -- startup ---------------------------------------------------------

    def open(self) -> "SessionManager":
        """Load persisted credentials and run the one-time legacy migration."""
        with self._lock:
            if self._opened:
                return self
            self._session = self.credential_store.load()
            migrated = self.credential_store.migrate_legacy_keys()
            if migrated is not None:
                self._session = self.credential_store.load()
            self._opened = True
            return self

    def close(self) -> None:
        self.transport.close()

    # -- read-only accessors ---------------------------------------------

    @property
    def session(self) -> Session:
        return replace(self._session)

    @property
    def is_logged_in(self) -> bool:
        return self._session.is_logged_in

    @property
    def id_token(self) -> str:
        return self._session.id_token

    @property
    def user_email(self) -> str:
        return self._session.user_email

    @property
    def display_name(self) -> str:
        return self._session.display_name

    @property
    def creator_username(self) -> str:
        return self._session.creator_username

    @property
    def stay_logged_in(self) -> bool:
        return self._session.stay_logged_in

    @property
    def current_user(self) -> UserProfile | None:
        if not self._session.is_logged_in:
            return None
        return UserProfile.from_session(self._session)

    # -- credentials -----------------------------------------------------

    def set_stay_logged_in(self, value: bool) -> None:
        with self._lock:
            self._session.stay_logged_in = value
            self.credential_store.set_stay_logged_in(value)
            if not value:
                logger.info("Stay-logged-in disabled; stored credentials removed")

    def _apply_grant(self, grant: TokenGrant, *, email: str) -> None:
        self._session.id_token = grant.id_token
        self._session.refresh_token = grant.refresh_token
        self._session.user_email = email
        self.credential_store.save(self._session)

    def _clear_credentials(self) -> None:
        self._session.clear_credentials()
        self.credential_store.clear()

    def login_with_password(self, email: str, password: str) -> bool:
        """Sign in with email and password.

        Raises :class:`AuthenticationError` carrying a user-facing message
        when the provider rejects the credentials.
        """
        with self._lock:
            config = self.resolver.ensure_configuration()
            try:
                grant = self.identity.sign_in(config, email=email, password=password)
            except ApiError as exc:
                logger.error("Login error: %s", exc.message)
                raise
            if grant is None:
                logger.warning("Login response carried no id token")
                return False
            self._apply_grant(grant, email=email)
            self.load_profile()
            logger.info("Login successful")
            return True

    def register(self, email: str, password: str) -> bool:
        with self._lock:
            config = self.resolver.ensure_configuration()
            try:
                grant = self.identity.sign_up(config, email=email, password=password)
            except ApiError as exc:
                logger.error("Registration error: %s", exc.message)
                raise
            if grant is None:
                logger.warning("Registration response carried no id token")
                return False
            self._apply_grant(grant, email=email)
            self.load_profile()
            logger.info("Registration successful")
            return True

    def try_auto_login(self) -> bool:
        """Restore a persisted session; never raises."""
        with self._lock:
            if not self.credential_store.is_loaded:
                self._session = self.credential_store.load()
            if not self._session.stay_logged_in:
                logger.info("Auto-login disabled by user preference")
                return False
            if not self._session.id_token:
                logger.info("No stored credentials; manual login required")
                return False
            try:
                logger.info("Attempting auto-login with stored credentials")
                if not self.validate_stored_token():
                    logger.info("Auto-login not possible; manual login required")
                    return False
                self.load_profile()
            except Exception as exc:  # noqa: BLE001
                logger.info("Auto-login failed: %s", exc)
                self._clear_credentials()
                return False
            logger.info("Auto-login successful")
            return True

    def validate_stored_token(self) -> bool:
        """Probe the stored token, refreshing it once when the backend reports it unauthenticated.

        Network failures are inconclusive and leave stored credentials alone.
        """
        with self._lock:
            if not self._session.id_token:
                logger.info("No stored token to validate")
                return False
            try:
                return self._probe()
            except CredentialError:
                logger.info("Stored token rejected; attempting refresh")
            except ConfigurationError as exc:
                logger.warning("Cannot validate token without configuration: %s", exc)
                return False
            except TransientNetworkError as exc:
                logger.warning("Network issue during token validation: %s", exc)
                return False
            except ApiError as exc:
                logger.warning("Token validation failed: %s", exc)
                self._clear_credentials()
                return False

            if self.refresh_token():
                try:
                    if self._probe():
                        logger.info("Token refreshed and validated")
                        return True
                except TransientNetworkError as exc:
                    logger.warning("Network issue while re-validating refreshed token: %s", exc)
                    return False
                except ApiError as exc:
                    logger.warning("Validation failed even after refresh: %s", exc)

            logger.info("Token could not be renewed; manual login required")
            self._clear_credentials()
            return False

    def _probe(self) -> bool:
        self.resolver.ensure_configuration()
        result = self.rpc.call(PROFILE_FUNCTION, {})
        if isinstance(result, dict) and "userId" in result:
            return True
        logger.warning("Token validation returned an unexpected response")
        return False

    def refresh_token(self) -> bool:
        """Mint a new id token from the stored refresh token."""
        with self._lock:
            if not self._session.refresh_token:
                logger.info("No refresh token available; manual login required")
                return False
            try:
                config = self.resolver.ensure_configuration()
                grant = self.identity.refresh(config, refresh_token=self._session.refresh_token)
            except ApplicationError as exc:
                logger.info("Token refresh failed: %s", exc)
                if exc.status_code == 400:
                    logger.info("Refresh token is no longer valid; clearing credentials")
                    self._clear_credentials()
                return False
            except ApiError as exc:
                logger.warning("Token refresh error: %s", exc)
                return False
            if grant is None:
                logger.warning("Token refresh response carried no id token")
                return False

            self._session.id_token = grant.id_token
            if grant.refresh_token:
                self._session.refresh_token = grant.refresh_token
            self.credential_store.save(self._session)
            logger.info("Id token refreshed")
            return True

    def load_profile(self) -> UserProfile | None:
        """Refresh profile fields from the backend; failures leave the session intact."""
        with self._lock:
            try:
                result = self.call_function(PROFILE_FUNCTION, {})
            except ApiError as exc:
                logger.warning("Profile load failed: %s", exc)
                return None
            if not isinstance(result, dict):
                logger.warning("Profile response was not an object")
                return None

            if "creatorUsername" in result:
                self._session.creator_username = str(result["creatorUsername"] or "")
            if "email" in result:
                self._session.user_email = str(result["email"] or "")
            if "displayName" in result:
                self._session.display_name = str(result["displayName"] or "")
            self.credential_store.save(self._session)
            logger.info(
                "Profile loaded: email=%s username=%s",
                self._session.user_email,
                self._session.creator_username,
            )
            return UserProfile.from_api(result)

    def force_profile_reload(self) -> None:
        if not self._session.id_token:
            logger.warning("Cannot reload profile without an authentication token")
            return
        self.load_profile()

    def logout(self) -> None:
        with self._lock:
            preserved = self.resolver.current_config
            environment = self.resolver.environment
            self._clear_credentials()
            self.transport.clear_authorization()
            # Re-registering keeps the next login from needing a bootstrap round trip.
            if preserved is not None and preserved.is_complete:
                self.resolver.set_environment_config(environment, preserved)
            logger.info("Logged out")

    # -- named functions -------------------------------------------------

    def call_function(self, function_name: str, payload: Any = None) -> Any:
        """Call a named backend function with the session token.

        A rejected token is refreshed once and the call repeated once. When
        the refresh fails or the repeated call is rejected again, stored
        credentials are cleared and the :class:`CredentialError` propagates.
        """
        self.resolver.ensure_configuration()
        try:
            return self.rpc.call(function_name, payload)
        except CredentialError as exc:
            rejected = exc
            logger.info("%s rejected the id token; attempting refresh", function_name)

        with self._lock:
            if not self.refresh_token():
                logger.info("Token could not be renewed after %s was rejected", function_name)
                self._clear_credentials()
                raise rejected
            try:
                return self.rpc.call(function_name, payload)
            except CredentialError:
                logger.warning("%s rejected the refreshed token", function_name)
                self._clear_credentials()
                raise

    def check_username(self, username: str) -> UsernameCheck:
        return UsernameCheck.from_api(self.call_function(USERNAME_CHECK_FUNCTION, {"username": username}))

    def check_username_availability(self, username: str) -> bool:
        try:
            return self.check_username(username).available
        except ApiError as exc:
            logger.error("Username check error: %s", exc)
            return False

    def get_username_suggestions(self, username: str) -> list[str]:
        try:
            return self.check_username(username).suggestions
        except ApiError as exc:
            logger.error("Username suggestions error: %s", exc)
            return []

    def reserve_username(self, username: str) -> bool:
        with self._lock:
            try:
                result = self.call_function(RESERVE_USERNAME_FUNCTION, {"username": username})
            except ApiError as exc:
                logger.error("Username reservation error: %s", exc)
                raise
            if isinstance(result, dict) and result.get("success") is True:
                self._session.creator_username = username
                self.credential_store.save(self._session)
                return True
            return False
