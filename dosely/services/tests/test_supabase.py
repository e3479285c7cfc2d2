"""Tests for the Supabase gateway: auth flows, row mapping and error mapping."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest

from dosely.models.tracking import (
    DoseCreate,
    MedicationCreate,
    MedicationUpdate,
    WeightEntryCreate,
    WeightSource,
)
from dosely.services.supabase import (
    AuthError,
    AuthSession,
    GatewayError,
    NotFoundError,
    SupabaseGateway,
    dose_from_row,
    dose_to_row,
    session_from_token_response,
)
from dosely.services.tests.conftest import (
    TEST_EMAIL,
    TEST_USER_ID,
    make_access_token,
    request_json,
    token_response,
)


def _echo_insert(request: httpx.Request) -> httpx.Response:
    """PostgREST ``return=representation``: answer with the inserted row."""
    return httpx.Response(201, json=[request_json(request)])


# ---------------------------------------------------------------------------
# Token handling
# ---------------------------------------------------------------------------


class TestSessionFromTokenResponse:
    def test_reads_subject_and_expiry(self) -> None:
        session = session_from_token_response(token_response())
        assert session.user_id == TEST_USER_ID
        assert session.email == TEST_EMAIL
        assert session.refresh_token == "refresh-token-1"
        assert session.expires_at is not None
        assert not session.is_expired()

    def test_missing_access_token(self) -> None:
        with pytest.raises(AuthError):
            session_from_token_response({"user": {"id": str(TEST_USER_ID)}})

    def test_malformed_access_token(self) -> None:
        with pytest.raises(AuthError, match="Malformed"):
            session_from_token_response({"access_token": "not-a-jwt"})

    def test_expired_within_margin(self) -> None:
        session = AuthSession(
            user_id=TEST_USER_ID,
            access_token="x",
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=30),
        )
        assert session.is_expired()


# ---------------------------------------------------------------------------
# Dose row mapping
# ---------------------------------------------------------------------------


class TestDoseRows:
    def test_to_row_splits_timestamp(self) -> None:
        dose = DoseCreate(
            medication_id=uuid4(),
            scheduled_at=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
            dose_mg=0.25,
        )
        row = dose_to_row(dose)
        assert "scheduled_at" not in row
        assert row["date"].startswith("2026-03-01T09:30")
        assert row["time"] == row["date"]

    def test_from_row_full_timestamps(self) -> None:
        dose = dose_from_row({
            "id": str(uuid4()),
            "user_id": str(TEST_USER_ID),
            "medication_id": str(uuid4()),
            "date": "2026-03-01T00:00:00+00:00",
            "time": "2026-03-01T09:30:00+00:00",
            "dose_mg": 0.25,
            "taken": True,
        })
        assert dose.scheduled_at == datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc)
        assert dose.taken is True

    def test_from_row_bare_clock_time(self) -> None:
        dose = dose_from_row({
            "id": str(uuid4()),
            "user_id": str(TEST_USER_ID),
            "medication_id": str(uuid4()),
            "date": "2026-03-01",
            "time": "09:30:00",
            "dose_mg": 0.5,
        })
        assert dose.scheduled_at.date() == datetime(2026, 3, 1).date()
        assert (dose.scheduled_at.hour, dose.scheduled_at.minute) == (9, 30)


# ---------------------------------------------------------------------------
# Auth over the wire
# ---------------------------------------------------------------------------


class TestAuth:
    @pytest.mark.asyncio
    async def test_sign_in_stores_session(self, make_gateway) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json=token_response()))
        user = await gateway.sign_in(TEST_EMAIL, "secret")

        assert user.id == TEST_USER_ID
        assert gateway.session is not None
        request = seen[0]
        assert request.url.path == "/auth/v1/token"
        assert request.url.params["grant_type"] == "password"
        assert request.headers["apikey"] == "anon-key"
        assert request_json(request) == {"email": TEST_EMAIL, "password": "secret"}

    @pytest.mark.asyncio
    async def test_requests_after_sign_in_carry_user_token(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.startswith("/auth/"):
                return httpx.Response(200, json=token_response())
            return httpx.Response(200, json=[])

        gateway, seen = make_gateway(handler)
        await gateway.sign_in(TEST_EMAIL, "secret")
        await gateway.list_medications(TEST_USER_ID)

        assert seen[0].headers["Authorization"] == "Bearer anon-key"
        assert seen[1].headers["Authorization"] == f"Bearer {gateway.session.access_token}"

    @pytest.mark.asyncio
    async def test_bad_credentials_raise_auth_error(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"}
        ))
        with pytest.raises(AuthError, match="Invalid login credentials") as exc_info:
            await gateway.sign_in(TEST_EMAIL, "wrong")
        assert exc_info.value.status_code == 400
        assert gateway.session is None

    @pytest.mark.asyncio
    async def test_username_sign_in_looks_up_email_first(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/rest/v1/profiles":
                return httpx.Response(200, json=[{"username": "jane", "email": TEST_EMAIL}])
            return httpx.Response(200, json=token_response())

        gateway, seen = make_gateway(handler)
        user = await gateway.sign_in_with_username("jane", "secret")

        assert user.id == TEST_USER_ID
        assert [r.url.path for r in seen] == ["/rest/v1/profiles", "/auth/v1/token"]
        assert seen[0].url.params["username"] == "eq.jane"
        assert request_json(seen[1])["email"] == TEST_EMAIL

    @pytest.mark.asyncio
    async def test_unknown_username_is_not_found(self, make_gateway) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json=[]))
        with pytest.raises(NotFoundError, match="Username not found"):
            await gateway.sign_in_with_username("ghost", "secret")
        # No password grant was attempted
        assert [r.url.path for r in seen] == ["/rest/v1/profiles"]

    @pytest.mark.asyncio
    async def test_sign_out_clears_session(self, make_gateway) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(204))
        gateway.restore_session(AuthSession(user_id=TEST_USER_ID, access_token=make_access_token()))
        await gateway.sign_out()
        assert gateway.session is None
        assert seen[0].url.path == "/auth/v1/logout"

    @pytest.mark.asyncio
    async def test_current_session_none_without_session(self, make_gateway) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(500))
        assert await gateway.get_current_session() is None
        assert seen == []

    @pytest.mark.asyncio
    async def test_expired_session_is_refreshed(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/v1/token":
                return httpx.Response(200, json=token_response())
            return httpx.Response(200, json={"id": str(TEST_USER_ID), "email": TEST_EMAIL})

        gateway, seen = make_gateway(handler)
        gateway.restore_session(AuthSession(
            user_id=TEST_USER_ID,
            access_token="stale",
            refresh_token="refresh-token-0",
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        ))
        user = await gateway.get_current_session()

        assert user is not None and user.id == TEST_USER_ID
        assert seen[0].url.params["grant_type"] == "refresh_token"
        assert request_json(seen[0]) == {"refresh_token": "refresh-token-0"}
        assert seen[1].url.path == "/auth/v1/user"
        assert gateway.session.access_token != "stale"

    @pytest.mark.asyncio
    async def test_refresh_without_token_fails(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(200))
        with pytest.raises(AuthError):
            await gateway.refresh_session()


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


class TestMedications:
    @pytest.mark.asyncio
    async def test_list_maps_columns(self, make_gateway) -> None:
        row = {
            "id": str(uuid4()),
            "user_id": str(TEST_USER_ID),
            "name": "Wegovy",
            "dose_mg": 0.25,
            "frequency_days": 7,
            "start_date": "2026-03-01",
            "end_date": None,
            "type": "GLP-1",
            "created_at": "2026-03-01T08:00:00+00:00",
        }
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json=[row]))
        meds = await gateway.list_medications(TEST_USER_ID)

        assert meds[0].interval_days == 7
        assert meds[0].name == "Wegovy"
        params = seen[0].url.params
        assert params["user_id"] == f"eq.{TEST_USER_ID}"
        assert params["order"] == "created_at.desc"

    @pytest.mark.asyncio
    async def test_add_sends_row_columns(self, make_gateway) -> None:
        gateway, seen = make_gateway(_echo_insert)
        body = MedicationCreate(name="Wegovy", dose_mg=0.25, interval_days=7, start_date="2026-03-01")
        med = await gateway.add_medication(TEST_USER_ID, body)

        sent = request_json(seen[0])
        assert sent["frequency_days"] == 7
        assert sent["type"] == "GLP-1"
        assert sent["user_id"] == str(TEST_USER_ID)
        assert seen[0].headers["Prefer"] == "return=representation"
        assert med.user_id == TEST_USER_ID
        assert str(med.id) == sent["id"]

    @pytest.mark.asyncio
    async def test_update_sends_only_changes(self, make_gateway) -> None:
        med_id = uuid4()

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=[{
                "id": str(med_id),
                "user_id": str(TEST_USER_ID),
                "name": "Wegovy",
                "dose_mg": 0.5,
                "frequency_days": 14,
                "start_date": "2026-03-01",
            }])

        gateway, seen = make_gateway(handler)
        med = await gateway.update_medication(med_id, MedicationUpdate(interval_days=14))

        assert seen[0].method == "PATCH"
        assert seen[0].url.params["id"] == f"eq.{med_id}"
        assert request_json(seen[0]) == {"frequency_days": 14}
        assert med.interval_days == 14

    @pytest.mark.asyncio
    async def test_update_missing_row(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(200, json=[]))
        with pytest.raises(NotFoundError):
            await gateway.update_medication(uuid4(), MedicationUpdate(notes="x"))

    @pytest.mark.asyncio
    async def test_delete(self, make_gateway) -> None:
        med_id = uuid4()
        gateway, seen = make_gateway(lambda r: httpx.Response(204))
        await gateway.delete_medication(med_id)
        assert seen[0].method == "DELETE"
        assert seen[0].url.params["id"] == f"eq.{med_id}"


class TestDosesAndWeights:
    @pytest.mark.asyncio
    async def test_list_doses_with_range(self, make_gateway) -> None:
        gateway, seen = make_gateway(lambda r: httpx.Response(200, json=[]))
        start = datetime(2026, 3, 1, tzinfo=timezone.utc)
        end = datetime(2026, 3, 31, tzinfo=timezone.utc)
        await gateway.list_doses(TEST_USER_ID, start, end)

        dates = seen[0].url.params.get_list("date")
        assert dates == [f"gte.{start.isoformat()}", f"lte.{end.isoformat()}"]
        assert seen[0].url.params["order"] == "date.desc"

    @pytest.mark.asyncio
    async def test_add_dose_round_trip(self, make_gateway) -> None:
        gateway, seen = make_gateway(_echo_insert)
        when = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        dose = await gateway.add_dose(
            TEST_USER_ID, DoseCreate(medication_id=uuid4(), scheduled_at=when, dose_mg=0.25)
        )
        assert "date" in request_json(seen[0])
        assert dose.scheduled_at == when

    @pytest.mark.asyncio
    async def test_add_weight_entry_uses_date_column(self, make_gateway) -> None:
        gateway, seen = make_gateway(_echo_insert)
        when = datetime(2026, 3, 1, 7, 0, tzinfo=timezone.utc)
        entry = await gateway.add_weight_entry(
            TEST_USER_ID,
            WeightEntryCreate(recorded_at=when, weight_kg=95.0, source=WeightSource.external_sync),
        )
        sent = request_json(seen[0])
        assert sent["source"] == "health_kit"
        assert sent["weight_kg"] == 95.0
        assert "recorded_at" not in sent
        assert entry.recorded_at == when


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_404_is_not_found(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(404, json={"message": "missing"}))
        with pytest.raises(NotFoundError, match="missing"):
            await gateway.list_medications(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_401_is_auth_error(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(401, json={"message": "JWT expired"}))
        with pytest.raises(AuthError):
            await gateway.list_weight_entries(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_500_is_plain_gateway_error(self, make_gateway) -> None:
        gateway, _ = make_gateway(lambda r: httpx.Response(500, text="upstream down"))
        with pytest.raises(GatewayError) as exc_info:
            await gateway.list_doses(TEST_USER_ID)
        assert type(exc_info.value) is GatewayError
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_transport_error_is_wrapped(self, make_gateway) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway, _ = make_gateway(handler)
        with pytest.raises(GatewayError, match="connection refused"):
            await gateway.list_medications(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_html_body_on_success_is_wrapped(self, make_gateway) -> None:
        gateway, _ = make_gateway(
            lambda r: httpx.Response(200, text="<html>maintenance</html>")
        )
        with pytest.raises(GatewayError) as exc_info:
            await gateway.sign_in(TEST_EMAIL, "secret")
        assert exc_info.value.status_code == 200
        assert gateway.session is None

    @pytest.mark.asyncio
    async def test_malformed_row_is_wrapped(self, make_gateway) -> None:
        row = {"id": str(uuid4()), "user_id": str(TEST_USER_ID), "name": "Wegovy"}
        gateway, _ = make_gateway(lambda r: httpx.Response(200, json=[row]))
        with pytest.raises(GatewayError, match="Malformed medications row"):
            await gateway.list_medications(TEST_USER_ID)

    @pytest.mark.asyncio
    async def test_dose_row_without_date_is_wrapped(self, make_gateway) -> None:
        row = {"id": str(uuid4()), "user_id": str(TEST_USER_ID), "dose_mg": 0.25}
        gateway, _ = make_gateway(lambda r: httpx.Response(201, json=[row]))
        body = DoseCreate(
            medication_id=uuid4(), scheduled_at=datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc), dose_mg=0.25
        )
        with pytest.raises(GatewayError, match="Malformed doses row"):
            await gateway.add_dose(TEST_USER_ID, body)

    @pytest.mark.asyncio
    async def test_unopened_gateway(self, settings) -> None:
        gateway = SupabaseGateway(settings)
        with pytest.raises(RuntimeError):
            await gateway.list_medications(TEST_USER_ID)
