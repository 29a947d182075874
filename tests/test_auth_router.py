import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from src.app.main import app
from src.core.security import get_current_viewer
from src.domain.accounts.exceptions import ConfigurationError
from src.domain.accounts.models import AccountRole, AccountStatus
from src.domain.accounts.permissions import Viewer
from tests.base import make_account


class TestAccessEndpoint(unittest.TestCase):
    """Test suite for the guard decision endpoint."""

    def setUp(self) -> None:
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()

    def _as(self, viewer: Viewer | None) -> None:
        app.dependency_overrides[get_current_viewer] = lambda: viewer

    def test_pending_without_session(self) -> None:
        self._as(None)

        response = self.client.get("/api/v1/auth/access", params={"required_role": "teacher"})

        self.assertEqual(response.json(), {"decision": "pending"})

    def test_allow_and_deny_by_tier(self) -> None:
        self._as(Viewer(id="s-1", profile=make_account("s-1", role=AccountRole.STUDENT)))

        allowed = self.client.get("/api/v1/auth/access", params={"required_role": "student"}).json()
        denied = self.client.get("/api/v1/auth/access", params={"required_role": "teacher"}).json()

        self.assertEqual(allowed["decision"], "allow")
        self.assertEqual(denied["decision"], "deny")

    def test_manage_users_flag(self) -> None:
        self._as(Viewer(id="v-1", profile=make_account("v-1", can_manage_users=True)))

        response = self.client.get("/api/v1/auth/access", params={"require_manage_users": "true"})

        self.assertEqual(response.json()["decision"], "allow")

    def test_unknown_required_role_is_rejected(self) -> None:
        self._as(Viewer(id="v-1"))

        response = self.client.get("/api/v1/auth/access", params={"required_role": "wizard"})

        self.assertEqual(response.status_code, 422)

    def test_me_requires_session(self) -> None:
        self._as(None)

        self.assertEqual(self.client.get("/api/v1/auth/me").status_code, 401)

    def test_me_returns_reconciled_viewer(self) -> None:
        profile = make_account("t-1", email="t@school.test", role=AccountRole.TEACHER)
        self._as(Viewer(id="t-1", email="t@school.test", role="admin", profile=profile))

        body = self.client.get("/api/v1/auth/me").json()

        self.assertEqual(body["id"], "t-1")
        self.assertEqual(body["role"], "teacher")


class TestCurrentViewerDependency(unittest.IsolatedAsyncioTestCase):
    """Test suite for session resolution at the HTTP boundary."""

    def setUp(self) -> None:
        self.service = MagicMock()
        self.service.resolve_viewer = AsyncMock()

    async def test_missing_header_resolves_without_token(self) -> None:
        self.service.resolve_viewer.return_value = None

        self.assertIsNone(await get_current_viewer(self.service, None))

        self.service.resolve_viewer.assert_awaited_once_with(None)

    async def test_bearer_token_forwarded(self) -> None:
        viewer = Viewer(id="u-1", profile=make_account("u-1"))
        self.service.resolve_viewer.return_value = viewer
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="jwt-token")

        self.assertIs(await get_current_viewer(self.service, credentials), viewer)

        self.service.resolve_viewer.assert_awaited_once_with("jwt-token")

    async def test_suspended_account_is_forbidden(self) -> None:
        profile = make_account("u-2", status=AccountStatus.SUSPENDED, role=AccountRole.ADMIN)
        self.service.resolve_viewer.return_value = Viewer(id="u-2", profile=profile)
        credentials = HTTPAuthorizationCredentials(scheme="Bearer", credentials="jwt-token")

        with self.assertRaises(HTTPException) as ctx:
            await get_current_viewer(self.service, credentials)

        self.assertEqual(ctx.exception.status_code, 403)


class TestHealthEndpoints(unittest.TestCase):
    def test_liveness(self) -> None:
        response = TestClient(app).get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")
        self.assertNotIn("integrations", response.json())

    @patch("src.app.main.SupabaseAuthClient")
    def test_api_health_reports_identity_provider(self, mock_client_class: MagicMock) -> None:
        mock_client_class.return_value.ping = AsyncMock(return_value=(False, "HTTP Error: 503"))

        body = TestClient(app).get("/api/v1/health").json()

        self.assertEqual(body["status"], "degraded")
        self.assertEqual(body["integrations"]["identity_provider"], {"status": "danger", "detail": "HTTP Error: 503"})

    @patch("src.app.main.SupabaseAuthClient")
    def test_api_health_unconfigured_provider(self, mock_client_class: MagicMock) -> None:
        mock_client_class.side_effect = ConfigurationError("Server configuration error: SUPABASE_URL is not set.")

        body = TestClient(app).get("/api/v1/health").json()

        self.assertEqual(body["status"], "degraded")
        self.assertIn("SUPABASE_URL", body["integrations"]["identity_provider"]["detail"])


if __name__ == "__main__":
    unittest.main()
