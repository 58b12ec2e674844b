import asyncio
import os
import tempfile
import unittest
from types import SimpleNamespace

import httpx
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select

from escala.api.deps import get_config, get_ledger
from escala.config import settings
from escala.db import get_db
from escala.main import app
from escala.models.credential import Credential
from escala.services.ledger import AssignmentLedger

from db_support import ADMIN, OFFICER, SATURDAY, WEDNESDAY, make_config, make_sessionmaker


NEW_PASSWORD = "nova-senha-1"


class TestScheduleApi(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine, self.Session = await make_sessionmaker()
        self.config = make_config()
        self.now = WEDNESDAY

        async def override_get_db():
            async with self.Session() as db:
                yield db

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_config] = lambda: self.config
        app.dependency_overrides[get_ledger] = lambda: AssignmentLedger(self.config, clock=lambda: self.now)
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        app.dependency_overrides.clear()
        await self.engine.dispose()

    async def _login(self, name: str, password: str) -> httpx.Response:
        return await self.client.post("/api/auth/login", json={"name": name, "password": password})

    async def _writer_headers(self, name: str) -> dict:
        res = await self._login(name, settings.DEFAULT_PASSWORD)
        self.assertEqual(res.status_code, 200)
        headers = {"Authorization": f"Bearer {res.json()['access_token']}"}
        res = await self.client.post(
            "/api/auth/change-password",
            json={"current_password": settings.DEFAULT_PASSWORD, "new_password": NEW_PASSWORD},
            headers=headers,
        )
        self.assertEqual(res.status_code, 200)
        return headers

    async def _post_updates(self, headers: dict, updates: list[dict], **extra) -> httpx.Response:
        return await self.client.post("/api/state/updates", json={"updates": updates, **extra}, headers=headers)

    async def test_unknown_name_rejected(self) -> None:
        res = await self._login("Carlos Pereira", settings.DEFAULT_PASSWORD)
        self.assertEqual(res.status_code, 401)
        self.assertEqual(res.json()["error"], "identity_not_resolved")

    async def test_first_login_resolves_variant_spelling(self) -> None:
        res = await self._login("maj pm EDUARDO MOSNA XAVIER", settings.DEFAULT_PASSWORD)
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["canonical_name"], ADMIN.canonical_name)
        self.assertTrue(body["is_admin"])
        self.assertTrue(body["must_change"])

    async def test_wrong_password_rejected(self) -> None:
        await self._login(OFFICER.canonical_name, settings.DEFAULT_PASSWORD)
        res = await self._login(OFFICER.canonical_name, "errada")
        self.assertEqual(res.status_code, 401)

    async def test_requires_token(self) -> None:
        res = await self.client.get("/api/state")
        self.assertEqual(res.status_code, 401)

    async def test_writes_blocked_until_password_changed(self) -> None:
        res = await self._login(OFFICER.canonical_name, settings.DEFAULT_PASSWORD)
        headers = {"Authorization": f"Bearer {res.json()['access_token']}"}
        res = await self._post_updates(
            headers, [{"date": "2026-10-13", "canonical_name": OFFICER.canonical_name, "code": "EXP"}]
        )
        self.assertEqual(res.status_code, 403)

        res = await self.client.post(
            "/api/auth/change-password",
            json={"current_password": settings.DEFAULT_PASSWORD, "new_password": settings.DEFAULT_PASSWORD},
            headers=headers,
        )
        self.assertEqual(res.status_code, 400)

    async def test_write_and_read_week(self) -> None:
        headers = await self._writer_headers(OFFICER.canonical_name)

        res = await self._login(OFFICER.canonical_name, NEW_PASSWORD)
        self.assertFalse(res.json()["must_change"])

        res = await self._post_updates(
            headers,
            [
                {
                    "date": "2026-10-13T00:00:00.000Z",
                    "canonical_name": OFFICER.canonical_name,
                    "code": "outros",
                    "description": "Curso de tiro",
                }
            ],
        )
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json(), {"ok": True, "applied_count": 1, "changed_count": 1})

        res = await self.client.get("/api/state", headers=headers)
        self.assertEqual(res.status_code, 200)
        body = res.json()
        key = f"{OFFICER.canonical_name}|2026-10-13"
        self.assertEqual(body["period"], {"start": "2026-10-12", "end": "2026-10-18"})
        self.assertEqual(body["dates"][0], "2026-10-12")
        self.assertEqual(body["assignments"], {key: "OUTROS"})
        self.assertEqual(body["notes"], {key: "Curso de tiro"})
        self.assertFalse(body["locked"])
        self.assertEqual(body["me"], {"canonical_name": OFFICER.canonical_name, "is_admin": False})

        res = await self.client.get("/api/auth/me", headers=headers)
        self.assertEqual(res.json()["display_name"], "Cap PM Antunes")

    async def test_validation_error_is_400(self) -> None:
        headers = await self._writer_headers(OFFICER.canonical_name)
        res = await self._post_updates(
            headers, [{"date": "2026-10-13", "canonical_name": OFFICER.canonical_name, "code": "OUTROS"}]
        )
        self.assertEqual(res.status_code, 400)
        body = res.json()
        self.assertEqual(body["error"], "validation_error")
        self.assertIn("update #0", body["detail"])

    async def test_locked_window_is_423(self) -> None:
        headers = await self._writer_headers(OFFICER.canonical_name)
        self.now = SATURDAY
        res = await self._post_updates(
            headers, [{"date": "2026-10-13", "canonical_name": OFFICER.canonical_name, "code": "EXP"}]
        )
        self.assertEqual(res.status_code, 423)
        self.assertEqual(res.json()["error"], "locked")

        res = await self.client.get("/api/state", headers=headers)
        self.assertTrue(res.json()["locked"])

    async def test_admin_override_after_lock(self) -> None:
        headers = await self._writer_headers(ADMIN.canonical_name)
        self.now = SATURDAY
        update = {"date": "2026-10-13", "canonical_name": OFFICER.canonical_name, "code": "LP"}
        res = await self._post_updates(headers, [update])
        self.assertEqual(res.status_code, 423)
        res = await self._post_updates(headers, [update], override_lock=True)
        self.assertEqual(res.status_code, 200)

    async def test_change_logs_admin_only(self) -> None:
        officer_headers = await self._writer_headers(OFFICER.canonical_name)
        await self._post_updates(
            officer_headers, [{"date": "2026-10-14", "canonical_name": OFFICER.canonical_name, "code": "SR"}]
        )

        res = await self.client.get("/api/change-logs", headers=officer_headers)
        self.assertEqual(res.status_code, 403)
        self.assertEqual(res.json()["error"], "permission_denied")

        admin_headers = await self._writer_headers(ADMIN.canonical_name)
        res = await self.client.get("/api/change-logs", params={"limit": 10}, headers=admin_headers)
        self.assertEqual(res.status_code, 200)
        (entry,) = res.json()
        self.assertEqual(entry["actor"], OFFICER.canonical_name)
        self.assertEqual(entry["field"], "code")
        self.assertEqual(entry["after"], "SR")
        self.assertEqual(entry["date"], "2026-10-14")

    async def test_health_reports_current_week(self) -> None:
        res = await self.client.get("/health")
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual(body["status"], "ok")
        self.assertEqual(body["timezone"], "America/Sao_Paulo")
        self.assertEqual(body["week"], {"start": "2026-10-12", "end": "2026-10-18"})
        self.assertEqual(body["officers"], len(self.config.roster))

    async def test_malformed_body_is_400(self) -> None:
        headers = await self._writer_headers(OFFICER.canonical_name)
        res = await self._post_updates(
            headers, [{"date": "2026-13-01", "canonical_name": OFFICER.canonical_name, "code": "EXP"}]
        )
        self.assertEqual(res.status_code, 400)
        body = res.json()
        self.assertEqual(body["error"], "validation_error")
        self.assertIn("updates.0.date", body["detail"])

        res = await self.client.post("/api/auth/login", json={"name": OFFICER.canonical_name})
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.json()["error"], "validation_error")
        self.assertIn("password", res.json()["detail"])


class TestConcurrentFirstLogin(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.engine, self.Session = await make_sessionmaker(os.path.join(tmpdir.name, "escala.db"))
        config = make_config()

        async def override_get_db():
            async with self.Session() as db:
                yield db

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_config] = lambda: config
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        app.dependency_overrides.clear()
        await self.engine.dispose()

    async def test_simultaneous_first_logins_share_one_credential(self) -> None:
        names = [ADMIN.canonical_name, "Eduardo Xavier", "maj pm eduardo mosna xavier", ADMIN.canonical_name]
        responses = await asyncio.gather(
            *(
                self.client.post("/api/auth/login", json={"name": name, "password": settings.DEFAULT_PASSWORD})
                for name in names
            )
        )
        self.assertEqual([res.status_code for res in responses], [200] * len(names))
        self.assertEqual({res.json()["canonical_name"] for res in responses}, {ADMIN.canonical_name})
        self.assertTrue(all(res.json()["must_change"] for res in responses))

        async with self.Session() as db:
            count = (await db.execute(select(func.count()).select_from(Credential))).scalar_one()
        self.assertEqual(count, 1)


class _UnavailableSession:
    """Session whose every statement fails as if the server went away."""

    def get_bind(self):
        return SimpleNamespace(dialect=SimpleNamespace(name="sqlite"))

    async def execute(self, *args, **kwargs):
        raise sa_exc.OperationalError("SELECT 1", {}, ConnectionRefusedError("connection refused"))

    async def commit(self) -> None:
        pass

    async def rollback(self) -> None:
        pass


class TestStorageUnavailable(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        config = make_config()

        async def override_get_db():
            yield _UnavailableSession()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_config] = lambda: config
        app.dependency_overrides[get_ledger] = lambda: AssignmentLedger(config, clock=lambda: WEDNESDAY)
        self.client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")

    async def asyncTearDown(self) -> None:
        await self.client.aclose()
        app.dependency_overrides.clear()

    async def test_login_is_503(self) -> None:
        res = await self.client.post(
            "/api/auth/login", json={"name": OFFICER.canonical_name, "password": settings.DEFAULT_PASSWORD}
        )
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.json()["error"], "storage_transient")

    async def test_health_is_503(self) -> None:
        res = await self.client.get("/health")
        self.assertEqual(res.status_code, 503)
        self.assertEqual(res.json()["error"], "storage_transient")


if __name__ == "__main__":
    unittest.main()
