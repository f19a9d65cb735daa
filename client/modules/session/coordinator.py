"""
Session coordinator.

Owns the single source of truth for "who is signed in". It establishes the
initial session (with readiness retries and deadlines), reacts to backend
auth-state notifications, loads the profile, and exposes mutations that
return ``AuthResult`` instead of raising.

Only one initialization may be in flight at a time. Dev auto-auth and guest
restore complete synchronously inside ``start()`` with no network I/O.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from modules.auth.exceptions import (
    AuthErrorCode,
    AuthModuleError,
    AuthTimeoutError,
    GuestModeError,
    NetworkError,
    NotAuthenticatedError,
    ProfileFetchError,
)
from modules.auth.interfaces import IAuthBackend, Subscription
from modules.auth.models import AuthEvent, IdentityUser, Profile, ProfileUpdate, Session
from modules.diagnostics import DiagnosticsReport, DiagnosticsReporter
from modules.guest import GuestIdentity, GuestModeManager, GuestPersona
from shared.config import AuthConfig

from .models import AuthResult, AuthSnapshot, AuthState
from .retry import RetryController
from .timeouts import TimeoutRace

logger = logging.getLogger(__name__)


SnapshotListener = Callable[[AuthSnapshot], None]

DEV_USER_EMAIL = "developer@beproductive.local"
DEV_USER_NAME = "Development User"
DEV_ACCESS_TOKEN = "dev-access-token"
DEV_REFRESH_TOKEN = "dev-refresh-token"

# Events after which the profile must be (re)loaded for the session's user
_PROFILE_EVENTS = {AuthEvent.INITIAL_SESSION, AuthEvent.SIGNED_IN, AuthEvent.USER_UPDATED}


def build_dev_identity() -> tuple[IdentityUser, Session, Profile]:
    """Fixed development identity used when the login bypass is on."""
    now = datetime.now(timezone.utc)
    user_id = str(uuid.uuid5(uuid.NAMESPACE_DNS, DEV_USER_EMAIL))
    user = IdentityUser(
        id=user_id,
        email=DEV_USER_EMAIL,
        created_at=now,
        email_confirmed_at=now,
        user_metadata={"full_name": DEV_USER_NAME},
    )
    session = Session.issue(
        user,
        access_token=DEV_ACCESS_TOKEN,
        refresh_token=DEV_REFRESH_TOKEN,
        issued_at=now,
    )
    profile = Profile(
        id=user_id,
        email=DEV_USER_EMAIL,
        full_name=DEV_USER_NAME,
        role="user",
        subscription_tier="free",
        onboarding_completed=False,
        created_at=now,
        updated_at=now,
    )
    return user, session, profile


class CancellationToken:
    """Checked after every suspension point; once cancelled, results are discarded."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True


class _ListenerSubscription:
    def __init__(self, listeners: list[SnapshotListener], listener: SnapshotListener):
        self._listeners = listeners
        self._listener = listener

    def unsubscribe(self) -> None:
        if self._listener in self._listeners:
            self._listeners.remove(self._listener)


class SessionCoordinator:
    """
    Authentication and session lifecycle coordinator.

    Args:
        config: Explicit coordinator configuration
        backend: Identity backend adapter
        guest_manager: Guest identity builder and selection store
        diagnostics: Optional reporter run after terminal failures
        sleep: Awaitable sleep used between readiness retries
    """

    def __init__(
        self,
        config: AuthConfig,
        backend: IAuthBackend,
        guest_manager: GuestModeManager,
        diagnostics: Optional[DiagnosticsReporter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config
        self._backend = backend
        self._guest = guest_manager
        self._diagnostics = diagnostics
        self._sleep = sleep
        self._retry = RetryController(config.max_retries, config.retry_delay, sleep=sleep)
        self._timeouts = TimeoutRace()

        self._state = AuthState.UNINITIALIZED
        self._user: Optional[IdentityUser] = None
        self._session: Optional[Session] = None
        self._profile: Optional[Profile] = None
        self._loading = True
        self._error: Optional[str] = None
        self._error_code: Optional[AuthErrorCode] = None
        self._guest_type: Optional[GuestPersona] = None
        self._diagnostics_hint: Optional[str] = None
        self.last_diagnostics: Optional[DiagnosticsReport] = None

        self._started = False
        self._initialized = False
        self._initializing = False
        self._lifetime = CancellationToken()
        self._attempt: Optional[CancellationToken] = None
        self._subscription: Optional[Subscription] = None
        self._init_task: Optional[asyncio.Task] = None
        self._deadline_task: Optional[asyncio.Task] = None
        self._profile_task: Optional[asyncio.Task] = None
        self._profile_user_id: Optional[str] = None
        self._background: set[asyncio.Task] = set()
        self._listeners: list[SnapshotListener] = []

    # =========================================================================
    # State
    # =========================================================================

    @property
    def snapshot(self) -> AuthSnapshot:
        """Current state as an immutable snapshot."""
        return AuthSnapshot(
            state=self._state,
            user=self._user,
            session=self._session,
            profile=self._profile,
            loading=self._loading,
            error=self._error,
            error_code=self._error_code,
            is_guest=self._guest_type is not None,
            guest_type=self._guest_type,
            diagnostics_hint=self._diagnostics_hint,
            can_continue_as_guest=(
                self._config.guest_mode_enabled
                and self._state in (AuthState.ERROR, AuthState.UNAUTHENTICATED)
            ),
        )

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def is_initializing(self) -> bool:
        return self._initializing

    def subscribe(self, listener: SnapshotListener) -> Subscription:
        """Call ``listener`` with a fresh snapshot after every state change."""
        self._listeners.append(listener)
        return _ListenerSubscription(self._listeners, listener)

    def _publish(self) -> None:
        snapshot = self.snapshot
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Auth state listener raised")

    def _clear_identity(self) -> None:
        self._user = None
        self._session = None
        self._profile = None
        self._profile_user_id = None
        self._profile_task = None

    def _clear_error(self) -> None:
        self._error = None
        self._error_code = None
        self._diagnostics_hint = None

    def _set_unauthenticated(self) -> None:
        self._clear_identity()
        self._clear_error()
        self._state = AuthState.UNAUTHENTICATED
        self._loading = False
        self._publish()

    def _enter_error(self, error: AuthModuleError, keep_identity: bool = False) -> None:
        logger.error(f"Authentication error [{error.error_code.value}]: {error.message}")
        if not keep_identity:
            self._clear_identity()
        self._state = AuthState.ERROR
        self._loading = False
        self._error = error.message
        self._error_code = error.error_code
        self._diagnostics_hint = None
        self._publish()
        self._schedule_diagnostics()

    def _spawn(self, coro: Awaitable[Any]) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    # =========================================================================
    # Initialization
    # =========================================================================

    def start(self) -> None:
        """
        Begin the session lifecycle.

        Dev auto-auth and guest restore finish before this returns. Otherwise
        initialization is scheduled on the running event loop.
        """
        if self._started:
            logger.debug("Session coordinator already started")
            return
        self._started = True

        if self._config.dev_auto_auth:
            self._apply_dev_identity()
            return

        if self._config.guest_mode_enabled:
            identity = self._restore_guest()
            if identity is not None:
                self._apply_guest(identity)
                return

        loop = asyncio.get_running_loop()
        if self._claim_initialization():
            self._init_task = loop.create_task(self._run_initialization())

    async def initialize(self) -> None:
        """
        Run initialization unless one is already in flight or has finished.

        A duplicate call returns immediately without touching the backend.
        """
        if not self._claim_initialization():
            return
        await self._run_initialization()

    def _claim_initialization(self) -> bool:
        if self._lifetime.cancelled:
            return False
        if self._initializing:
            logger.debug("Auth initialization already in progress, skipping")
            return False
        if self._initialized:
            logger.debug("Auth initialization already completed, skipping")
            return False
        self._initializing = True
        self._initialized = True
        self._state = AuthState.INITIALIZING
        self._loading = True
        self._publish()
        return True

    def _apply_dev_identity(self) -> None:
        logger.warning("Login bypass enabled: using development identity")
        self._user, self._session, self._profile = build_dev_identity()
        self._profile_user_id = self._user.id
        self._clear_error()
        self._state = AuthState.AUTHENTICATED
        self._loading = False
        self._publish()

    def _restore_guest(self) -> Optional[GuestIdentity]:
        try:
            return self._guest.restore()
        except GuestModeError as e:
            logger.warning(f"Could not restore guest mode: {e.message}")
            return None

    def _is_live(self, attempt: Optional[CancellationToken]) -> bool:
        if self._lifetime.cancelled:
            return False
        return attempt is None or not attempt.cancelled

    async def _run_initialization(self) -> None:
        attempt = CancellationToken()
        self._attempt = attempt
        self._deadline_task = asyncio.ensure_future(self._watch_deadline(attempt))
        logger.info(f"Initializing authentication ({self._config.backend_kind.value} backend)")

        try:
            session = await self._retry.run(
                self._backend.check_ready,
                lambda: self._subscribe_and_get_session(attempt),
            )
            if not self._is_live(attempt):
                return
            if session is None:
                logger.info("No existing session")
                self._set_unauthenticated()
                return

            self._user = session.user
            self._session = session
            self._publish()
            task = self._ensure_profile(session)
            if task is not None:
                # Shielded so a deadline cancelling this task leaves the fetch alone
                await asyncio.shield(task)
        except AuthModuleError as e:
            if self._is_live(attempt):
                self._enter_error(e)
        except asyncio.CancelledError:
            logger.debug("Auth initialization task cancelled")
            raise
        except Exception as e:
            logger.exception("Unexpected error during auth initialization")
            if self._is_live(attempt):
                self._enter_error(AuthModuleError(f"Authentication failed: {e}"))
        finally:
            if self._attempt is attempt:
                self._initializing = False
                self._cancel_deadline()

    async def _subscribe_and_get_session(self, attempt: CancellationToken) -> Optional[Session]:
        if not self._is_live(attempt):
            return None
        # Subscribe first so no event can slip between the query and the listener
        self._ensure_subscription()
        return await self._timeouts.race(
            self._backend.get_session(),
            self._config.timeouts.session_check,
            "Session check",
        )

    def _ensure_subscription(self) -> None:
        if self._subscription is None and not self._lifetime.cancelled:
            self._subscription = self._backend.on_auth_state_change(self._handle_auth_event)

    async def _watch_deadline(self, attempt: CancellationToken) -> None:
        deadline = self._config.timeouts.initialization
        await asyncio.sleep(deadline)
        if not self._is_live(attempt) or not self._initializing:
            return
        logger.warning(f"Auth initialization exceeded {deadline:g}s, giving up")
        self._abandon_initialization()
        self._enter_error(AuthTimeoutError("Authentication", deadline))

    def _abandon_initialization(self) -> None:
        if self._attempt is not None:
            self._attempt.cancel()
        self._initializing = False
        self._cancel_deadline()
        current = asyncio.current_task() if self._has_running_loop() else None
        if self._init_task is not None and not self._init_task.done() and self._init_task is not current:
            self._init_task.cancel()

    def _supersede_initialization(self, reason: str) -> bool:
        """Drop an in-flight initialization so its late session result is discarded."""
        if not self._initializing:
            return False
        logger.info(f"Auth initialization superseded by {reason}")
        self._abandon_initialization()
        return True

    def _settle_superseded(self) -> None:
        # A superseding mutation that established no session must not leave us initializing
        if self._state == AuthState.INITIALIZING and self._session is None:
            self._set_unauthenticated()

    def _cancel_deadline(self) -> None:
        task = self._deadline_task
        if task is None or task.done():
            return
        if self._has_running_loop() and task is asyncio.current_task():
            return
        task.cancel()

    @staticmethod
    def _has_running_loop() -> bool:
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return False
        return True

    # =========================================================================
    # Profile
    # =========================================================================

    def _ensure_profile(self, session: Session) -> Optional[asyncio.Task]:
        """One profile fetch per session-establishment; joins an in-flight one."""
        user_id = session.user.id
        if self._profile_user_id == user_id:
            if self._profile_task is not None and not self._profile_task.done():
                return self._profile_task
            if self._profile is not None:
                return None
        self._profile_user_id = user_id
        self._loading = True
        task = self._spawn(self._load_profile(session))
        self._profile_task = task
        return task

    def _is_current_session(self, session: Session) -> bool:
        return (
            self._guest_type is None
            and self._session is not None
            and self._session.user.id == session.user.id
        )

    async def _load_profile(self, session: Session) -> None:
        user_id = session.user.id
        try:
            profile = await self._timeouts.race(
                self._backend.fetch_profile(user_id, session),
                self._config.timeouts.profile_fetch,
                "Profile fetch",
            )
        except Exception as e:
            if not isinstance(e, AuthModuleError):
                logger.exception(f"Unexpected error loading profile for user {user_id}")
            if self._lifetime.cancelled or not self._is_current_session(session):
                return
            if isinstance(e, ProfileFetchError):
                error = e
            else:
                error = ProfileFetchError(user_id, getattr(e, "message", str(e)))
            self._profile = None
            self._enter_error(error, keep_identity=True)
            return

        if self._lifetime.cancelled or not self._is_current_session(session):
            logger.debug(f"Discarding stale profile for user {user_id}")
            return
        self._profile = profile
        self._clear_error()
        self._state = AuthState.AUTHENTICATED
        self._loading = False
        logger.info(f"Authenticated as {user_id} (role={profile.role})")
        self._publish()

    # =========================================================================
    # Backend events
    # =========================================================================

    def _handle_auth_event(self, event: AuthEvent, session: Optional[Session]) -> None:
        if self._lifetime.cancelled:
            return
        if self._guest_type is not None:
            logger.debug(f"Ignoring {event.value} while in guest mode")
            return
        logger.debug(f"Auth event: {event.value}")
        if event != AuthEvent.INITIAL_SESSION:
            self._supersede_initialization(f"{event.value} event")

        if event == AuthEvent.SIGNED_OUT or session is None:
            self._set_unauthenticated()
            return

        self._user = session.user
        self._session = session
        if event in _PROFILE_EVENTS or self._profile_user_id != session.user.id:
            self._ensure_profile(session)
        self._publish()

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _call(
        self,
        label: str,
        operation: Callable[[], Awaitable[Any]],
    ) -> tuple[Any, Optional[AuthModuleError]]:
        """Run a backend mutation; returns (value, None) or (None, error)."""
        retry = RetryController(self._config.max_retries, self._config.retry_delay, sleep=self._sleep)
        try:
            value = await retry.run(self._backend.check_ready, operation)
        except AuthModuleError as e:
            logger.warning(f"{label} failed [{e.error_code.value}]: {e.message}")
            if isinstance(e, NetworkError):
                self._schedule_diagnostics()
            return None, e
        except Exception as e:
            logger.exception(f"{label} failed unexpectedly")
            return None, AuthModuleError(f"{label} failed: {e}")

        if self._error is not None:
            self.clear_error()
        return value, None

    async def sign_in(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password."""
        self._leave_guest_for_account()
        superseded = self._supersede_initialization("sign-in")

        async def action() -> Session:
            self._ensure_subscription()
            return await self._backend.sign_in_with_password(email, password)

        session, error = await self._call("Sign in", action)
        if superseded:
            self._settle_superseded()
        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok(user_id=session.user.id)

    async def sign_up(self, email: str, password: str, display_name: str) -> AuthResult:
        """Register a new account; the backend may require email confirmation."""
        self._leave_guest_for_account()
        superseded = self._supersede_initialization("sign-up")

        async def action() -> Optional[IdentityUser]:
            self._ensure_subscription()
            return await self._backend.sign_up(
                email,
                password,
                display_name,
                redirect_to=f"{self._config.site_url}/",
            )

        user, error = await self._call("Sign up", action)
        if superseded:
            self._settle_superseded()
        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok(user_id=user.id if user else None)

    async def sign_in_with_provider(self, provider: str) -> AuthResult:
        """Start an OAuth sign-in; the result carries the redirect URL."""
        url, error = await self._call(
            f"{provider.capitalize()} sign-in",
            lambda: self._backend.sign_in_with_oauth(provider, f"{self._config.site_url}/"),
        )
        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok(redirect_url=url)

    async def reset_password(self, email: str) -> AuthResult:
        _, error = await self._call(
            "Password reset",
            lambda: self._backend.reset_password_for_email(
                email, f"{self._config.site_url}/reset-password"
            ),
        )
        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok()

    async def sign_out(self) -> AuthResult:
        """
        Sign out.

        Local state is cleared even if the backend call fails; the failure
        is still reported on the result.
        """
        if self._guest_type is not None:
            return self.exit_guest_mode()

        self._supersede_initialization("sign-out")
        error: Optional[AuthModuleError] = None
        try:
            if await self._backend.check_ready():
                await self._backend.sign_out()
        except AuthModuleError as e:
            logger.warning(f"Backend sign-out failed, clearing local state anyway: {e.message}")
            error = e
        except Exception as e:
            logger.exception("Backend sign-out failed unexpectedly")
            error = AuthModuleError(f"Sign out failed: {e}")
        finally:
            self._set_unauthenticated()

        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok()

    async def update_profile(self, patch: ProfileUpdate) -> AuthResult:
        """Apply a profile patch, then reload the profile."""
        user, session = self._user, self._session
        if user is None:
            return AuthResult.failure(NotAuthenticatedError())
        if patch.is_empty():
            return AuthResult.ok(user_id=user.id)

        if self._guest_type is not None:
            # Guest profiles only live in memory
            if self._profile is not None:
                self._profile = self._profile.model_copy(update=patch.to_payload())
                self._publish()
            return AuthResult.ok(user_id=user.id)

        _, error = await self._call(
            "Profile update",
            lambda: self._backend.update_profile(user.id, patch, session),
        )
        if error is not None:
            return AuthResult.failure(error)
        if session is not None:
            await self._load_profile(session)
        return AuthResult.ok(user_id=user.id)

    def clear_error(self) -> None:
        """Dismiss the current error and settle into a non-error state."""
        self._clear_error()
        if self._state == AuthState.ERROR:
            if self._user is not None and self._session is not None:
                self._state = AuthState.AUTHENTICATED
            else:
                self._clear_identity()
                self._state = AuthState.UNAUTHENTICATED
        self._publish()

    # =========================================================================
    # Guest mode
    # =========================================================================

    def enter_guest_mode(self, persona: GuestPersona) -> AuthResult:
        """Switch to a guest persona without any network I/O."""
        if not self._config.guest_mode_enabled:
            return AuthResult.failure(GuestModeError("Guest mode is disabled"))
        try:
            identity = self._guest.build_identity(persona)
            self._guest.save_selection(identity.persona)
        except GuestModeError as e:
            logger.error(f"Failed to enter guest mode: {e.message}")
            return AuthResult.failure(e)

        self._supersede_initialization("guest mode")
        self._apply_guest(identity)
        return AuthResult.ok(user_id=identity.user.id)

    def exit_guest_mode(self) -> AuthResult:
        """Leave guest mode and clear the persisted persona."""
        error: Optional[GuestModeError] = None
        try:
            self._guest.clear_selection()
        except GuestModeError as e:
            logger.warning(e.message)
            error = e
        self._guest_type = None
        self._set_unauthenticated()
        if error is not None:
            return AuthResult.failure(error)
        return AuthResult.ok()

    def _apply_guest(self, identity: GuestIdentity) -> None:
        logger.info(f"Guest mode active ({identity.persona.value})")
        self._guest_type = identity.persona
        self._user = identity.user
        self._session = identity.session
        self._profile = identity.profile
        self._profile_user_id = identity.user.id
        self._clear_error()
        self._state = AuthState.GUEST
        self._loading = False
        self._publish()

    def _leave_guest_for_account(self) -> None:
        if self._guest_type is None:
            return
        logger.info("Leaving guest mode to sign in with an account")
        try:
            self._guest.clear_selection()
        except GuestModeError as e:
            logger.warning(e.message)
        self._guest_type = None
        self._set_unauthenticated()

    # =========================================================================
    # Diagnostics
    # =========================================================================

    def _schedule_diagnostics(self) -> None:
        if self._diagnostics is None or self._lifetime.cancelled:
            return
        if not self._has_running_loop():
            return
        self._spawn(self._run_diagnostics())

    async def _run_diagnostics(self) -> None:
        report = await self._diagnostics.run()
        if self._lifetime.cancelled:
            return
        self.last_diagnostics = report
        self._diagnostics_hint = report.hint
        self._publish()

    # =========================================================================
    # Teardown
    # =========================================================================

    async def wait_idle(self) -> AuthSnapshot:
        """Wait for initialization and background work to settle."""
        while True:
            pending = [
                task
                for task in (self._init_task, self._deadline_task, *self._background)
                if task is not None and not task.done()
            ]
            if not pending:
                return self.snapshot
            await asyncio.gather(*pending, return_exceptions=True)

    def teardown(self) -> None:
        """
        Stop reacting to anything.

        Cancels the deadline and initialization, unsubscribes from the
        backend, and drops listeners. Late results are discarded.
        """
        if self._lifetime.cancelled:
            return
        logger.info("Tearing down session coordinator")
        self._lifetime.cancel()
        self._abandon_initialization()
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        for task in list(self._background):
            task.cancel()
        self._listeners.clear()

    async def aclose(self) -> None:
        """Tear down and release backend resources."""
        self.teardown()
        await self._backend.aclose()
