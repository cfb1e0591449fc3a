"""HTTP-клиент QMS API (для скриптов, интеграций и фронтенд-прокси)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

import httpx

from qms.core.logging import get_logger

log = get_logger("client")

FALLBACK_ERROR_MESSAGE = "An unexpected error occurred"


@dataclass(frozen=True)
class ApiContext:
    """Токен и тенант, с которыми выполняется вызов."""

    token: str
    tenant_id: str

    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "X-Tenant-ID": self.tenant_id}


class ApiClientError(Exception):
    """Ошибка ответа API: HTTP-статус, detail и код ошибки сервера."""

    def __init__(self, status_code: int, detail: str, code: str | None = None) -> None:
        self.status_code = status_code
        self.detail = detail
        self.code = code
        super().__init__(f"{status_code}: {detail}")


def _clean(params: dict[str, Any] | None) -> dict[str, Any]:
    return {k: str(v) if isinstance(v, UUID) else v for k, v in (params or {}).items() if v is not None}


class ResourceClient:
    """CRUD и смена статуса для одной коллекции (documents, deviations ...)."""

    def __init__(self, client: QMSClient, path: str) -> None:
        self.client = client
        self.path = path

    async def list(self, ctx: ApiContext, **filters: Any) -> list[dict[str, Any]]:
        return await self.client.request("GET", self.path, ctx, params=filters)

    async def stats(self, ctx: ApiContext) -> dict[str, Any]:
        return await self.client.request("GET", f"{self.path}/stats", ctx)

    async def get(self, ctx: ApiContext, record_id: UUID | str) -> dict[str, Any]:
        return await self.client.request("GET", f"{self.path}/{record_id}", ctx)

    async def create(self, ctx: ApiContext, data: dict[str, Any]) -> dict[str, Any]:
        return await self.client.request("POST", self.path, ctx, json=data)

    async def update(self, ctx: ApiContext, record_id: UUID | str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.client.request("PUT", f"{self.path}/{record_id}", ctx, json=data)

    async def change_status(
        self,
        ctx: ApiContext,
        record_id: UUID | str,
        status: str,
        comment: str | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        payload = {"status": status, "comment": comment, **extra}
        return await self.client.request(
            "PATCH", f"{self.path}/{record_id}/status", ctx, json=_clean(payload)
        )

    async def history(self, ctx: ApiContext, record_id: UUID | str) -> list[dict[str, Any]]:
        return await self.client.request("GET", f"{self.path}/{record_id}/history", ctx)

    async def delete(self, ctx: ApiContext, record_id: UUID | str) -> None:
        await self.client.request("DELETE", f"{self.path}/{record_id}", ctx)


class QMSClient:
    """
    Асинхронный клиент QMS API.

    Состояние авторизации не хранится в клиенте: каждый вызов получает
    ApiContext явно, поэтому один клиент можно использовать для разных
    пользователей и тенантов.

    Пример:
        async with QMSClient("http://localhost:8000") as client:
            ctx = await client.login("admin@demo.local", "secret", tenant="demo")
            docs = await client.documents.list(ctx, status="approved")
    """

    def __init__(
        self,
        base_url: str,
        timeout_sec: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}/api",
            timeout=timeout_sec,
            transport=transport,
        )
        self.documents = ResourceClient(self, "/documents")
        self.deviations = ResourceClient(self, "/deviations")
        self.capas = ResourceClient(self, "/capas")
        self.change_controls = ResourceClient(self, "/change-controls")
        self.audits = ResourceClient(self, "/audits")
        self.trainings = ResourceClient(self, "/trainings")
        self.users = ResourceClient(self, "/users")

    async def __aenter__(self) -> QMSClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def request(
        self,
        method: str,
        path: str,
        ctx: ApiContext | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
    ) -> Any:
        """
        Выполняет запрос и возвращает JSON-тело (None для 204).

        Raises:
            ApiClientError: статус ответа >= 400 или сетевая ошибка
        """
        headers = ctx.headers() if ctx is not None else {}
        try:
            response = await self._http.request(
                method,
                path,
                headers=headers,
                json=json,
                params=_clean(params),
                files=files,
                data=data,
            )
        except httpx.HTTPError as e:
            log.error(f"{method} {path} failed: {e}")
            raise ApiClientError(0, f"Network error: {e}") from e

        if response.status_code >= 400:
            raise self._error(response)
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def request_bytes(self, method: str, path: str, ctx: ApiContext) -> bytes:
        """Запрос бинарного ответа (DOCX сертификата, файл материала)."""
        try:
            response = await self._http.request(method, path, headers=ctx.headers())
        except httpx.HTTPError as e:
            raise ApiClientError(0, f"Network error: {e}") from e
        if response.status_code >= 400:
            raise self._error(response)
        return response.content

    @staticmethod
    def _error(response: httpx.Response) -> ApiClientError:
        detail = FALLBACK_ERROR_MESSAGE
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            raw = body.get("detail")
            if isinstance(raw, str) and raw:
                detail = raw
            elif isinstance(raw, list) and raw:
                # Ошибки валидации FastAPI: список {"loc", "msg", "type"}
                detail = "; ".join(str(item.get("msg", item)) for item in raw if isinstance(item, dict)) or detail
            code = body.get("code")
        log.warning(f"API error {response.status_code} {response.request.method} {response.request.url}: {detail}")
        return ApiClientError(response.status_code, detail, code)

    # ------------------------------------------------------------------ auth

    async def login(
        self,
        email: str,
        password: str,
        tenant: str | None = None,
        tenant_id: UUID | str | None = None,
    ) -> ApiContext:
        payload = _clean(
            {"email": email, "password": password, "tenant": tenant, "tenant_id": tenant_id}
        )
        body = await self.request("POST", "/auth/login", json=payload)
        return ApiContext(token=body["access_token"], tenant_id=str(body["tenant_id"]))

    async def me(self, ctx: ApiContext) -> dict[str, Any]:
        return await self.request("GET", "/auth/me", ctx)

    async def logout(self, ctx: ApiContext) -> None:
        await self.request("POST", "/auth/logout", ctx)

    async def current_tenant(self, ctx: ApiContext) -> dict[str, Any]:
        return await self.request("GET", "/tenants/current", ctx)

    async def change_password(
        self,
        ctx: ApiContext,
        user_id: UUID | str,
        new_password: str,
        current_password: str | None = None,
    ) -> None:
        await self.request(
            "PUT",
            f"/users/{user_id}/password",
            ctx,
            json=_clean({"new_password": new_password, "current_password": current_password}),
        )

    # --------------------------------------------------------------- quality

    async def create_capa_from_deviation(
        self, ctx: ApiContext, deviation_id: UUID | str, data: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.request("POST", f"/deviations/{deviation_id}/capa", ctx, json=data)

    # -------------------------------------------------------------- training

    async def training_content(self, ctx: ApiContext, training_id: UUID | str) -> list[dict[str, Any]]:
        return await self.request("GET", f"/trainings/{training_id}/content", ctx)

    async def add_content(
        self, ctx: ApiContext, training_id: UUID | str, data: dict[str, Any]
    ) -> dict[str, Any]:
        return await self.request("POST", f"/trainings/{training_id}/content", ctx, json=data)

    async def upload_content(
        self,
        ctx: ApiContext,
        training_id: UUID | str,
        filename: str,
        payload: bytes,
        title: str,
        content_type: str,
        duration: int | None = None,
    ) -> dict[str, Any]:
        return await self.request(
            "POST",
            f"/trainings/{training_id}/content/upload",
            ctx,
            files={"file": (filename, payload)},
            data=_clean({"title": title, "content_type": content_type, "duration": duration}),
        )

    async def reorder_content(
        self, ctx: ApiContext, training_id: UUID | str, content_ids: list[UUID | str]
    ) -> list[dict[str, Any]]:
        return await self.request(
            "PUT",
            f"/trainings/{training_id}/content/reorder",
            ctx,
            json={"content_ids": [str(c) for c in content_ids]},
        )

    async def create_exam(self, ctx: ApiContext, training_id: UUID | str, data: dict[str, Any]) -> dict[str, Any]:
        return await self.request("POST", f"/trainings/{training_id}/exam", ctx, json=data)

    async def exam_results(self, ctx: ApiContext, training_id: UUID | str) -> dict[str, Any]:
        return await self.request("GET", f"/trainings/{training_id}/exam/results", ctx)

    async def assign_training(
        self,
        ctx: ApiContext,
        training_id: UUID | str,
        user_ids: list[UUID | str] | None = None,
        role_filter: str | None = None,
        due_date: str | None = None,
    ) -> dict[str, Any]:
        payload = _clean(
            {
                "training_id": str(training_id),
                "user_ids": [str(u) for u in user_ids] if user_ids else None,
                "role_filter": role_filter,
                "due_date": due_date,
            }
        )
        return await self.request("POST", "/training-assignments/assign", ctx, json=payload)

    async def my_assignments(self, ctx: ApiContext) -> list[dict[str, Any]]:
        return await self.request("GET", "/training-assignments/my", ctx)

    async def assignment(self, ctx: ApiContext, assignment_id: UUID | str) -> dict[str, Any]:
        return await self.request("GET", f"/training-assignments/{assignment_id}", ctx)

    async def start_assignment(self, ctx: ApiContext, assignment_id: UUID | str) -> dict[str, Any]:
        return await self.request("POST", f"/training-assignments/{assignment_id}/start", ctx)

    async def complete_content(
        self,
        ctx: ApiContext,
        assignment_id: UUID | str,
        content_id: UUID | str,
        time_spent: int,
        playback_ratio: float | None = None,
        viewed_slides: int | None = None,
    ) -> dict[str, Any]:
        payload = _clean(
            {"time_spent": time_spent, "playback_ratio": playback_ratio, "viewed_slides": viewed_slides}
        )
        return await self.request(
            "POST",
            f"/training-assignments/{assignment_id}/content/{content_id}/complete",
            ctx,
            json=payload,
        )

    async def start_exam(self, ctx: ApiContext, assignment_id: UUID | str) -> dict[str, Any]:
        return await self.request("POST", f"/exams/{assignment_id}/start", ctx)

    async def submit_exam(
        self, ctx: ApiContext, attempt_id: UUID | str, answers: list[dict[str, Any]]
    ) -> dict[str, Any]:
        return await self.request(
            "POST", f"/exams/attempts/{attempt_id}/submit", ctx, json={"answers": answers}
        )

    # ---------------------------------------------------------- certificates

    async def my_certificates(self, ctx: ApiContext) -> list[dict[str, Any]]:
        return await self.request("GET", "/certificates/my", ctx)

    async def verify_certificate(self, code: str) -> dict[str, Any]:
        return await self.request("GET", f"/certificates/verify/{code}")

    async def certificate_docx(self, ctx: ApiContext, certificate_id: UUID | str) -> bytes:
        return await self.request_bytes("GET", f"/certificates/{certificate_id}/docx", ctx)

    async def revoke_certificate(
        self, ctx: ApiContext, certificate_id: UUID | str, reason: str
    ) -> dict[str, Any]:
        return await self.request(
            "POST", f"/certificates/{certificate_id}/revoke", ctx, json={"reason": reason}
        )

    # --------------------------------------------------- notifications/reports

    async def notifications(
        self, ctx: ApiContext, page: int = 1, unread_only: bool = False
    ) -> dict[str, Any]:
        return await self.request(
            "GET", "/notifications", ctx, params={"page": page, "unread_only": unread_only}
        )

    async def unread_count(self, ctx: ApiContext) -> int:
        body = await self.request("GET", "/notifications/unread-count", ctx)
        return int(body["count"])

    async def mark_all_read(self, ctx: ApiContext) -> int:
        body = await self.request("PATCH", "/notifications/read-all", ctx)
        return int(body["updated"])

    async def dashboard(self, ctx: ApiContext) -> dict[str, Any]:
        return await self.request("GET", "/reports/dashboard", ctx)

    async def module_report(self, ctx: ApiContext, module: str, **filters: Any) -> dict[str, Any]:
        return await self.request("GET", f"/reports/{module}", ctx, params=filters)

    async def compliance(self, ctx: ApiContext) -> dict[str, Any]:
        return await self.request("GET", "/reports/compliance", ctx)
