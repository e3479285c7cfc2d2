"""Supabase gateway: GoTrue auth plus PostgREST table access.

Every table request carries the project's anon key and, once signed in, the
user's access token, so Postgres Row-Level Security sees the right identity.
Rows map to domain records by field renaming only; the few renames live on
the Pydantic models as aliases, except dose timestamps which are split into
the ``date`` / ``time`` columns here.

Uses ``httpx`` directly rather than the supabase-py client so the HTTP layer
can be injected and mocked in tests.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any, Callable, TypeVar

import httpx
import jwt as pyjwt

from dosely.config import Settings, get_settings
from dosely.models.base import utc_now
from dosely.models.tracking import (
    Dose,
    DoseCreate,
    DoseUpdate,
    Medication,
    MedicationCreate,
    MedicationUpdate,
    WeightEntry,
    WeightEntryCreate,
    WeightEntryUpdate,
)
from dosely.models.users import User, UserProfile

logger = logging.getLogger("dosely.db")

T = TypeVar("T")

PROFILES = "profiles"
MEDICATIONS = "medications"
DOSES = "doses"
WEIGHT_LOGS = "weight_logs"

# Refresh the access token this many seconds before it actually expires
_REFRESH_MARGIN_SECONDS = 60


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """A backend call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(GatewayError):
    """The requested record does not exist."""


class AuthError(GatewayError):
    """Authentication failed or no session is available."""


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AuthSession:
    """Tokens issued by GoTrue for the signed-in user."""

    user_id: uuid.UUID
    access_token: str
    refresh_token: str | None = None
    email: str | None = None
    expires_at: datetime | None = None  # UTC

    def is_expired(self, margin_seconds: int = _REFRESH_MARGIN_SECONDS) -> bool:
        if self.expires_at is None:
            return False
        return (self.expires_at - utc_now()).total_seconds() < margin_seconds


def session_from_token_response(data: dict) -> AuthSession:
    """Build an AuthSession from a GoTrue token grant response.

    The subject and expiry are read from the access token's claims; the
    signature is verified by the backend on every request, not here.
    """
    access_token = data.get("access_token")
    if not access_token:
        raise AuthError("Token response has no access_token")
    try:
        claims = pyjwt.decode(access_token, options={"verify_signature": False})
    except pyjwt.InvalidTokenError as exc:
        raise AuthError(f"Malformed access token: {exc}") from exc

    user = data.get("user") or {}
    subject = claims.get("sub") or user.get("id")
    if not subject:
        raise AuthError("Access token has no subject")

    exp = claims.get("exp") or data.get("expires_at")
    return AuthSession(
        user_id=uuid.UUID(str(subject)),
        access_token=access_token,
        refresh_token=data.get("refresh_token"),
        email=claims.get("email") or user.get("email"),
        expires_at=datetime.fromtimestamp(int(exp), tz=timezone.utc) if exp else None,
    )


# ---------------------------------------------------------------------------
# Row helpers
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _from_row(parse: Callable[[dict[str, Any]], T], row: dict[str, Any], table: str) -> T:
    """Build a record from a row; a row that does not fit raises GatewayError."""
    try:
        return parse(row)
    except (KeyError, TypeError, ValueError) as exc:
        logger.warning("Malformed %s row: %s", table, exc)
        raise GatewayError(f"Malformed {table} row: {exc}") from exc


def dose_to_row(dose: DoseCreate | Dose) -> dict[str, Any]:
    """Split ``scheduled_at`` into the ``date`` and ``time`` columns."""
    row = dose.model_dump(mode="json", exclude={"scheduled_at"})
    stamp = dose.scheduled_at.isoformat()
    row["date"] = stamp
    row["time"] = stamp
    return row


def dose_from_row(row: dict[str, Any]) -> Dose:
    """Rebuild ``scheduled_at`` from the ``date`` and ``time`` columns.

    ``time`` may hold a full timestamp or a bare ``HH:MM[:SS]`` value.
    """
    data = dict(row)
    day = _parse_timestamp(str(data.pop("date")))
    raw_time = data.pop("time", None)
    if raw_time:
        raw_time = str(raw_time)
        if "T" in raw_time or " " in raw_time:
            clock = _parse_timestamp(raw_time).timetz()
        else:
            clock = time.fromisoformat(raw_time)
        day = datetime.combine(day.date(), clock.replace(tzinfo=clock.tzinfo or day.tzinfo))
    data["scheduled_at"] = day
    return Dose.model_validate(data)


def _user_from_payload(data: dict, fallback_email: str = "") -> User:
    user = data.get("user") if "user" in data else data
    if not user or not user.get("id"):
        raise AuthError("No user returned")
    return User(id=uuid.UUID(str(user["id"])), email=user.get("email") or fallback_email)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class SupabaseGateway:
    """Typed wrapper over the Supabase REST surface.

    Usage::

        gateway = SupabaseGateway(settings)
        await gateway.open()
        user = await gateway.sign_in("me@example.com", "secret")
        meds = await gateway.list_medications(user.id)
        await gateway.close()

    The gateway is the single writer of the current ``AuthSession``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._http_client = http_client
        self._owns_client = http_client is None
        self._session: AuthSession | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Create the HTTP client. Call once at app startup."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self._settings.supabase_url.rstrip("/"),
                timeout=self._settings.request_timeout_seconds,
            )
            self._owns_client = True
            logger.info("Supabase client opened for %s", self._settings.supabase_url)

    async def close(self) -> None:
        """Close the HTTP client if this gateway created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
            logger.info("Supabase client closed")

    async def __aenter__(self) -> SupabaseGateway:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def session(self) -> AuthSession | None:
        return self._session

    def restore_session(self, session: AuthSession | None) -> None:
        """Install a previously persisted session (or clear it)."""
        self._session = session

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            raise RuntimeError("Supabase client is not open; call open() first")
        return self._http_client

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, extra: dict[str, str] | None = None) -> dict[str, str]:
        token = self._session.access_token if self._session else self._settings.supabase_anon_key
        headers = {
            "apikey": self._settings.supabase_anon_key,
            "Authorization": f"Bearer {token}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = await self._client().request(
                method, path, params=params, json=json, headers=self._headers(headers)
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise GatewayError(f"{method} {path} failed: {exc}") from exc

        if response.status_code >= 400:
            raise self._error_for(method, path, response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            logger.warning("%s %s returned a non-JSON body: %s", method, path, exc)
            raise GatewayError(
                f"{method} {path} returned an unreadable response", response.status_code
            ) from exc

    @staticmethod
    def _error_for(method: str, path: str, response: httpx.Response) -> GatewayError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = ""
        if isinstance(body, dict):
            message = (
                body.get("msg")
                or body.get("message")
                or body.get("error_description")
                or body.get("error")
                or ""
            )
        message = message or response.text or response.reason_phrase
        status = response.status_code
        logger.warning("%s %s → %d: %s", method, path, status, message)

        if path.startswith("/auth/") and status in (400, 401, 403, 422):
            return AuthError(message, status)
        if status == 401:
            return AuthError(message, status)
        if status == 404:
            return NotFoundError(message, status)
        return GatewayError(message, status)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def sign_up(self, email: str, password: str, username: str) -> User:
        data = await self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"username": username}},
        )
        if data and data.get("access_token"):
            self._session = session_from_token_response(data)
        user = _user_from_payload(data or {}, fallback_email=email)
        logger.info("Signed up user %s", user.id)
        return user

    async def sign_in(self, email: str, password: str) -> User:
        data = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        self._session = session_from_token_response(data or {})
        user = _user_from_payload(data or {}, fallback_email=email)
        logger.info("Signed in user %s", user.id)
        return user

    async def sign_in_with_username(self, username: str, password: str) -> User:
        """Resolve the username's email via the profiles table, then sign in.

        Raises:
            NotFoundError: If no profile carries that username (or it has no email).
        """
        profile = await self.find_profile_by_username(username)
        if profile is None or not profile.email:
            raise NotFoundError("Username not found", 404)
        return await self.sign_in(profile.email, password)

    async def sign_out(self) -> None:
        if self._session is not None:
            await self._request("POST", "/auth/v1/logout")
        self._session = None

    async def reset_password(self, email: str) -> None:
        await self._request("POST", "/auth/v1/recover", json={"email": email})

    async def refresh_session(self) -> AuthSession:
        if self._session is None or not self._session.refresh_token:
            raise AuthError("No refresh token available")
        data = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": self._session.refresh_token},
        )
        self._session = session_from_token_response(data or {})
        logger.debug("Refreshed session for %s", self._session.user_id)
        return self._session

    async def get_current_session(self) -> User | None:
        """Return the signed-in user, refreshing an expired token first.

        Returns None when there is no session at all.
        """
        if self._session is None:
            return None
        if self._session.is_expired():
            await self.refresh_session()
        data = await self._request("GET", "/auth/v1/user")
        return _user_from_payload(data or {}, fallback_email=self._session.email or "")

    # ------------------------------------------------------------------
    # Generic table access
    # ------------------------------------------------------------------

    async def _select(
        self, table: str, filters: list[tuple[str, str]], order: str | None = None
    ) -> list[dict[str, Any]]:
        params = list(filters)
        if order:
            params.append(("order", order))
        rows = await self._request("GET", f"/rest/v1/{table}", params=params)
        return rows or []

    async def _insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        return rows[0] if rows else row

    async def _update(self, table: str, record_id: uuid.UUID, changes: dict[str, Any]) -> dict[str, Any]:
        rows = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params=[("id", f"eq.{record_id}")],
            json=changes,
            headers={"Prefer": "return=representation"},
        )
        if not rows:
            raise NotFoundError(f"{table} row {record_id} not found", 404)
        return rows[0]

    async def _delete(self, table: str, record_id: uuid.UUID) -> None:
        await self._request("DELETE", f"/rest/v1/{table}", params=[("id", f"eq.{record_id}")])

    @staticmethod
    def _new_row(user_id: uuid.UUID, payload: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "user_id": str(user_id),
            **payload,
            "created_at": utc_now().isoformat(),
        }

    @staticmethod
    def _range_filters(
        user_id: uuid.UUID, start: datetime | None, end: datetime | None
    ) -> list[tuple[str, str]]:
        filters = [("user_id", f"eq.{user_id}")]
        if start is not None:
            filters.append(("date", f"gte.{start.isoformat()}"))
        if end is not None:
            filters.append(("date", f"lte.{end.isoformat()}"))
        return filters

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    async def get_profile(self, user_id: uuid.UUID) -> UserProfile | None:
        rows = await self._select(PROFILES, [("id", f"eq.{user_id}"), ("limit", "1")])
        return _from_row(UserProfile.model_validate, rows[0], PROFILES) if rows else None

    async def find_profile_by_username(self, username: str) -> UserProfile | None:
        rows = await self._select(PROFILES, [("username", f"eq.{username}"), ("limit", "1")])
        return _from_row(UserProfile.model_validate, rows[0], PROFILES) if rows else None

    async def update_profile(self, user_id: uuid.UUID, profile: UserProfile) -> UserProfile:
        """Upsert the profile row keyed by user id."""
        row = {"id": str(user_id), **profile.model_dump(mode="json")}
        rows = await self._request(
            "POST",
            f"/rest/v1/{PROFILES}",
            json=row,
            headers={"Prefer": "resolution=merge-duplicates,return=representation"},
        )
        return _from_row(UserProfile.model_validate, rows[0], PROFILES) if rows else profile

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    async def list_medications(self, user_id: uuid.UUID) -> list[Medication]:
        rows = await self._select(
            MEDICATIONS, [("user_id", f"eq.{user_id}")], order="created_at.desc"
        )
        return [_from_row(Medication.model_validate, r, MEDICATIONS) for r in rows]

    async def add_medication(self, user_id: uuid.UUID, body: MedicationCreate) -> Medication:
        row = self._new_row(user_id, body.model_dump(mode="json", by_alias=True))
        saved = await self._insert(MEDICATIONS, row)
        return _from_row(Medication.model_validate, saved, MEDICATIONS)

    async def update_medication(self, medication_id: uuid.UUID, body: MedicationUpdate) -> Medication:
        changes = body.model_dump(mode="json", by_alias=True, exclude_unset=True)
        saved = await self._update(MEDICATIONS, medication_id, changes)
        return _from_row(Medication.model_validate, saved, MEDICATIONS)

    async def delete_medication(self, medication_id: uuid.UUID) -> None:
        await self._delete(MEDICATIONS, medication_id)

    # ------------------------------------------------------------------
    # Doses
    # ------------------------------------------------------------------

    async def list_doses(
        self,
        user_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Dose]:
        rows = await self._select(
            DOSES, self._range_filters(user_id, start, end), order="date.desc"
        )
        return [_from_row(dose_from_row, r, DOSES) for r in rows]

    async def add_dose(self, user_id: uuid.UUID, body: DoseCreate) -> Dose:
        row = self._new_row(user_id, dose_to_row(body))
        saved = await self._insert(DOSES, row)
        return _from_row(dose_from_row, saved, DOSES)

    async def update_dose(self, dose_id: uuid.UUID, body: DoseUpdate) -> Dose:
        changes = body.model_dump(mode="json", exclude_unset=True)
        saved = await self._update(DOSES, dose_id, changes)
        return _from_row(dose_from_row, saved, DOSES)

    async def delete_dose(self, dose_id: uuid.UUID) -> None:
        await self._delete(DOSES, dose_id)

    # ------------------------------------------------------------------
    # Weight entries
    # ------------------------------------------------------------------

    async def list_weight_entries(
        self,
        user_id: uuid.UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[WeightEntry]:
        """Weight history, newest first."""
        rows = await self._select(
            WEIGHT_LOGS, self._range_filters(user_id, start, end), order="date.desc"
        )
        return [_from_row(WeightEntry.model_validate, r, WEIGHT_LOGS) for r in rows]

    async def add_weight_entry(self, user_id: uuid.UUID, body: WeightEntryCreate) -> WeightEntry:
        row = self._new_row(user_id, body.model_dump(mode="json", by_alias=True))
        saved = await self._insert(WEIGHT_LOGS, row)
        return _from_row(WeightEntry.model_validate, saved, WEIGHT_LOGS)

    async def update_weight_entry(self, entry_id: uuid.UUID, body: WeightEntryUpdate) -> WeightEntry:
        changes = body.model_dump(mode="json", exclude_unset=True)
        saved = await self._update(WEIGHT_LOGS, entry_id, changes)
        return _from_row(WeightEntry.model_validate, saved, WEIGHT_LOGS)

    async def delete_weight_entry(self, entry_id: uuid.UUID) -> None:
        await self._delete(WEIGHT_LOGS, entry_id)
