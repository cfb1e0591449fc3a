"""Тесты для HTTP-клиента QMS API."""

import json

import httpx
import pytest

from qms.client import FALLBACK_ERROR_MESSAGE, ApiClientError, ApiContext, QMSClient


def _mock_client(handler) -> QMSClient:
    return QMSClient("http://qms.local/", transport=httpx.MockTransport(handler))


class TestRequests:
    """Тесты для формирования запросов и разбора ответов."""

    async def test_login_returns_context(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"access_token": "tok", "tenant_id": "t-1"})

        async with _mock_client(handler) as client:
            ctx = await client.login("qa@central.example.com", "Secret123!", tenant="central")

        assert ctx == ApiContext(token="tok", tenant_id="t-1")
        assert seen["url"] == "http://qms.local/api/auth/login"
        assert seen["body"] == {
            "email": "qa@central.example.com",
            "password": "Secret123!",
            "tenant": "central",
        }

    async def test_headers_and_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json=[])

        ctx = ApiContext(token="tok", tenant_id="t-1")
        async with _mock_client(handler) as client:
            assert await client.deviations.list(ctx, severity="Major", search=None) == []

        assert seen["headers"]["authorization"] == "Bearer tok"
        assert seen["headers"]["x-tenant-id"] == "t-1"
        assert seen["params"] == {"severity": "Major"}

    async def test_no_content(self):
        async with _mock_client(lambda request: httpx.Response(204)) as client:
            assert await client.documents.delete(ApiContext("tok", "t-1"), "doc-1") is None


class TestErrors:
    """Тесты для преобразования ошибок API."""

    @pytest.mark.parametrize(
        "response, detail, code",
        [
            (
                httpx.Response(409, json={"detail": "Cannot change", "code": "invalid_transition"}),
                "Cannot change",
                "invalid_transition",
            ),
            (
                httpx.Response(
                    422,
                    json={"detail": [{"msg": "field required"}, {"msg": "value is not a valid email"}]},
                ),
                "field required; value is not a valid email",
                None,
            ),
            (httpx.Response(500, text="Internal Server Error"), FALLBACK_ERROR_MESSAGE, None),
        ],
    )
    async def test_error_mapping(self, response, detail, code):
        async with _mock_client(lambda request: response) as client:
            with pytest.raises(ApiClientError) as exc_info:
                await client.me(ApiContext("tok", "t-1"))

        assert exc_info.value.status_code == response.status_code
        assert exc_info.value.detail == detail
        assert exc_info.value.code == code

    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _mock_client(handler) as client:
            with pytest.raises(ApiClientError) as exc_info:
                await client.verify_certificate("abc")

        assert exc_info.value.status_code == 0
        assert "connection refused" in exc_info.value.detail


class TestAgainstApp:
    """Тесты клиента против приложения (ASGI без сети)."""

    async def test_login_and_deviation_flow(self, app, qa_manager, user_password):
        async with QMSClient("http://test", transport=httpx.ASGITransport(app=app)) as client:
            ctx = await client.login(qa_manager.email, user_password, tenant="central")

            deviation = await client.deviations.create(
                ctx,
                {
                    "title": "Expired stock on shelf",
                    "description": "Two packs past expiry found during check",
                    "severity": "Minor",
                    "category": "Storage",
                    "occurrence_date": "2025-05-02",
                },
            )
            updated = await client.deviations.change_status(ctx, deviation["id"], "investigation")
            assert updated["status"] == "investigation"

            with pytest.raises(ApiClientError) as exc_info:
                await client.deviations.change_status(ctx, deviation["id"], "open")
            assert exc_info.value.status_code == 409
            assert exc_info.value.code == "invalid_transition"

            history = await client.deviations.history(ctx, deviation["id"])
            assert len(history) == 2

    async def test_bad_login(self, app, qa_manager):
        async with QMSClient("http://test", transport=httpx.ASGITransport(app=app)) as client:
            with pytest.raises(ApiClientError) as exc_info:
                await client.login(qa_manager.email, "wrong-password", tenant="central")

        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Invalid email or password"
