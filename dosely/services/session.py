"""Current-user session and onboarding state.

``SessionManager`` is the only writer of the signed-in user; screens and
other services read it through ``snapshot`` (an immutable ``SessionState``)
or the read-only properties.  Every backend failure is caught here, logged,
and surfaced through ``error_message``; the public coroutines return ``True``
or ``False`` instead of raising.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from dosely.models.users import User, UserProfile
from dosely.services.supabase import GatewayError, NotFoundError, SupabaseGateway

logger = logging.getLogger("dosely.session")


@dataclass(frozen=True)
class SessionState:
    """Point-in-time view of the session handed to readers."""

    is_authenticated: bool = False
    user: User | None = None
    needs_onboarding: bool = False

    @property
    def has_profile(self) -> bool:
        return self.user is not None and self.user.has_profile


class SessionManager:
    """Sign-up / sign-in / onboarding state machine over the gateway."""

    def __init__(self, gateway: SupabaseGateway) -> None:
        self._gateway = gateway
        self._state = SessionState()
        self._write_lock = asyncio.Lock()
        self.is_loading = False
        self.error_message: str | None = None

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------

    @property
    def snapshot(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state.is_authenticated

    @property
    def current_user(self) -> User | None:
        return self._state.user

    @property
    def needs_onboarding(self) -> bool:
        return self._state.needs_onboarding

    @property
    def has_profile(self) -> bool:
        return self._state.has_profile

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set(self, **changes: object) -> None:
        current = self._state
        self._state = SessionState(
            is_authenticated=changes.get("is_authenticated", current.is_authenticated),  # type: ignore[arg-type]
            user=changes.get("user", current.user),  # type: ignore[arg-type]
            needs_onboarding=changes.get("needs_onboarding", current.needs_onboarding),  # type: ignore[arg-type]
        )

    async def _attach_profile(self, user: User) -> None:
        profile = await self._gateway.get_profile(user.id)
        if profile is not None:
            self._set(
                user=user.model_copy(update={"profile": profile}),
                needs_onboarding=False,
                is_authenticated=True,
            )
        else:
            self._set(user=user, needs_onboarding=True, is_authenticated=True)

    def _fail(self, action: str, exc: Exception) -> bool:
        logger.warning("%s failed: %s", action, exc)
        self.error_message = str(exc) or action + " failed"
        return False

    async def _signed_in(self, action: str, sign_in: Callable[[], Awaitable[User]]) -> bool:
        self.is_loading = True
        self.error_message = None
        try:
            async with self._write_lock:
                user = await sign_in()
                await self._attach_profile(user)
            logger.info("%s succeeded for %s", action, user.id)
            return True
        except GatewayError as exc:
            return self._fail(action, exc)
        finally:
            self.is_loading = False

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def check_session(self) -> None:
        """Restore state from the gateway's current session, if any."""
        self.is_loading = True
        try:
            async with self._write_lock:
                user = await self._gateway.get_current_session()
                if user is None:
                    self._state = SessionState()
                    return
                await self._attach_profile(user)
        except GatewayError as exc:
            logger.warning("Session check failed: %s", exc)
            self._state = SessionState()
        finally:
            self.is_loading = False

    async def sign_up(self, email: str, password: str, username: str) -> bool:
        self.is_loading = True
        self.error_message = None
        try:
            async with self._write_lock:
                user = await self._gateway.sign_up(email, password, username)
                self._set(user=user, needs_onboarding=True, is_authenticated=True)
            return True
        except GatewayError as exc:
            return self._fail("Sign up", exc)
        finally:
            self.is_loading = False

    async def sign_in(self, email: str, password: str) -> bool:
        return await self._signed_in("Sign in", lambda: self._gateway.sign_in(email, password))

    async def sign_in_with_username(self, username: str, password: str) -> bool:
        """Sign in by username; an unknown username fails with "Username not found"."""
        self.is_loading = True
        self.error_message = None
        try:
            async with self._write_lock:
                user = await self._gateway.sign_in_with_username(username, password)
                await self._attach_profile(user)
            return True
        except NotFoundError:
            logger.info("Username sign-in: no profile for %r", username)
            self.error_message = "Username not found"
            return False
        except GatewayError as exc:
            return self._fail("Sign in", exc)
        finally:
            self.is_loading = False

    async def sign_out(self) -> bool:
        try:
            async with self._write_lock:
                await self._gateway.sign_out()
                self._state = SessionState()
            return True
        except GatewayError as exc:
            return self._fail("Sign out", exc)

    async def reset_password(self, email: str) -> bool:
        self.is_loading = True
        self.error_message = None
        try:
            await self._gateway.reset_password(email)
            return True
        except GatewayError as exc:
            return self._fail("Password reset", exc)
        finally:
            self.is_loading = False

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    async def complete_onboarding(self, profile: UserProfile) -> bool:
        """Save the first profile and leave onboarding.

        Succeeds at most once per session: after the profile exists the call
        is refused without touching the backend.
        """
        async with self._write_lock:
            user = self._state.user
            if user is None:
                self.error_message = "Not signed in"
                return False
            if not self._state.needs_onboarding or user.has_profile:
                logger.info("Onboarding already completed for %s", user.id)
                self.error_message = "Onboarding already completed"
                return False
            try:
                saved = await self._gateway.update_profile(user.id, profile)
            except GatewayError as exc:
                return self._fail("Onboarding", exc)
            self._set(user=user.model_copy(update={"profile": saved}), needs_onboarding=False)
        logger.info("Onboarding completed for %s", user.id)
        return True

    async def update_profile(self, profile: UserProfile) -> bool:
        async with self._write_lock:
            user = self._state.user
            if user is None:
                self.error_message = "Not signed in"
                return False
            try:
                saved = await self._gateway.update_profile(user.id, profile)
            except GatewayError as exc:
                return self._fail("Profile update", exc)
            self._set(user=user.model_copy(update={"profile": saved}))
        return True
