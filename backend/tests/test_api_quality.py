"""Тесты для API модулей качества: документы, отклонения, CAPA, change control, аудиты."""

from qms.db.enums import UserRole

DEVIATION = {
    "title": "Vaccine fridge temperature excursion",
    "description": "Fridge 2 recorded 11.2 C for 40 minutes overnight",
    "severity": "Major",
    "category": "Storage",
    "occurrence_date": "2025-03-10",
    "batch_number": "FLU-24-118",
}


class TestAuthRequired:
    """Тесты для проверки аутентификации."""

    async def test_missing_token(self, client):
        response = await client.get("/api/deviations")
        assert response.status_code == 401
        assert response.json()["code"] == "unauthorized"
        assert response.headers["www-authenticate"] == "Bearer"

    async def test_garbage_token(self, client):
        response = await client.get("/api/deviations", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid token"

    async def test_tenant_header_mismatch(self, client, admin, other_tenant, headers_for):
        headers = {**headers_for(admin), "X-Tenant-ID": str(other_tenant.id)}
        response = await client.get("/api/deviations", headers=headers)
        assert response.status_code == 403

    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "ok"}


class TestDeviationLifecycle:
    """Тесты для жизненного цикла отклонения через API."""

    async def test_open_investigate_close(self, client, qa_manager, headers_for):
        """Тест сценария open -> investigation -> closed с историей статусов."""
        headers = headers_for(qa_manager)

        created = await client.post("/api/deviations", json=DEVIATION, headers=headers)
        assert created.status_code == 201
        deviation = created.json()
        assert deviation["status"] == "open"
        assert deviation["deviation_number"].startswith("DEV-")
        assert deviation["deviation_number"].endswith("-001")
        assert deviation["detected_by"] == str(qa_manager.id)

        url = f"/api/deviations/{deviation['id']}"
        response = await client.patch(
            f"{url}/status",
            json={"status": "investigation", "investigation": "Door seal damaged"},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["investigation"] == "Door seal damaged"

        response = await client.patch(
            f"{url}/status",
            json={
                "status": "closed",
                "comment": "Seal replaced",
                "verification_comments": "Temperatures stable for 7 days",
            },
            headers=headers,
        )
        assert response.status_code == 200
        closed = response.json()
        assert closed["status"] == "closed"
        assert closed["closure_date"] is not None
        assert closed["verified_by"] == str(qa_manager.id)

        history = (await client.get(f"{url}/history", headers=headers)).json()
        assert [h["action"] for h in history] == ["create", "status_change", "status_change"]
        assert [h["after_json"]["status"] for h in history] == ["open", "investigation", "closed"]
        assert history[2]["comment"] == "Seal replaced"

    async def test_invalid_transition_conflict(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        deviation = (await client.post("/api/deviations", json=DEVIATION, headers=headers)).json()

        response = await client.patch(
            f"/api/deviations/{deviation['id']}/status", json={"status": "closed"}, headers=headers
        )

        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "invalid_transition"
        assert body["details"]["allowed"] == ["investigation", "rejected"]

    async def test_unknown_status_rejected(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        deviation = (await client.post("/api/deviations", json=DEVIATION, headers=headers)).json()

        response = await client.patch(
            f"/api/deviations/{deviation['id']}/status", json={"status": "done"}, headers=headers
        )

        assert response.status_code == 422

    async def test_status_in_create_payload_ignored(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        response = await client.post(
            "/api/deviations", json={**DEVIATION, "status": "closed"}, headers=headers
        )
        assert response.json()["status"] == "open"

    async def test_raise_capa(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        deviation = (await client.post("/api/deviations", json=DEVIATION, headers=headers)).json()
        url = f"/api/deviations/{deviation['id']}"

        premature = await client.post(f"{url}/capa", json={"type": "Corrective"}, headers=headers)
        assert premature.status_code == 400

        for target in ("investigation", "capa_required"):
            await client.patch(f"{url}/status", json={"status": target}, headers=headers)
        response = await client.post(f"{url}/capa", json={"type": "Both"}, headers=headers)

        assert response.status_code == 201
        body = response.json()
        assert body["deviation"]["status"] == "capa_in_progress"
        assert body["deviation"]["capa_id"] == body["capa"]["id"]
        assert body["capa"]["source"] == "Deviation"
        assert body["capa"]["source_reference"] == deviation["deviation_number"]
        assert body["capa"]["status"] == "open"

        again = await client.post(f"{url}/capa", json={"type": "Both"}, headers=headers)
        assert again.status_code == 409

    async def test_list_filters_and_stats(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        await client.post("/api/deviations", json=DEVIATION, headers=headers)
        await client.post(
            "/api/deviations",
            json={**DEVIATION, "title": "Label error", "severity": "Minor", "batch_number": None},
            headers=headers,
        )

        minor = (await client.get("/api/deviations", params={"severity": "Minor"}, headers=headers)).json()
        assert [d["title"] for d in minor] == ["Label error"]

        found = (await client.get("/api/deviations", params={"search": "FLU-24"}, headers=headers)).json()
        assert len(found) == 1

        stats = (await client.get("/api/deviations/stats", headers=headers)).json()
        assert stats == {"total": 2, "by_status": {"open": 2}}

    async def test_delete_requires_manager(self, client, tenant, make_user, headers_for):
        pharmacist = await make_user(tenant, UserRole.PHARMACIST)
        headers = headers_for(pharmacist)
        deviation = (await client.post("/api/deviations", json=DEVIATION, headers=headers)).json()

        response = await client.delete(f"/api/deviations/{deviation['id']}", headers=headers)

        assert response.status_code == 403


class TestDocuments:
    """Тесты для API документов."""

    DOCUMENT = {
        "title": "Dispensing of Controlled Drugs",
        "document_type": "SOP",
        "content": "1. Purpose",
        "tags": ["controlled-drugs"],
    }

    async def test_create_get_roundtrip(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        created = await client.post("/api/documents", json=self.DOCUMENT, headers=headers)
        assert created.status_code == 201
        document = created.json()
        assert document["status"] == "draft"
        assert document["version"] == "1.0"

        fetched = (await client.get(f"/api/documents/{document['id']}", headers=headers)).json()
        assert fetched["title"] == self.DOCUMENT["title"]
        assert fetched["tags"] == ["controlled-drugs"]
        assert fetched["created_by"] == str(qa_manager.id)

    async def test_approval_sets_approver(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        document = (await client.post("/api/documents", json=self.DOCUMENT, headers=headers)).json()
        url = f"/api/documents/{document['id']}/status"

        await client.patch(url, json={"status": "review"}, headers=headers)
        approved = (await client.patch(url, json={"status": "approved"}, headers=headers)).json()

        assert approved["status"] == "approved"
        assert approved["approved_by"] == str(qa_manager.id)
        assert approved["approved_at"] is not None

    async def test_status_via_update(self, client, qa_manager, headers_for):
        """Тест, что смена статуса через PUT проходит ту же проверку переходов."""
        headers = headers_for(qa_manager)
        document = (await client.post("/api/documents", json=self.DOCUMENT, headers=headers)).json()

        response = await client.put(
            f"/api/documents/{document['id']}", json={"status": "approved"}, headers=headers
        )

        assert response.status_code == 409

    async def test_trainee_cannot_create(self, client, trainee, headers_for):
        response = await client.post("/api/documents", json=self.DOCUMENT, headers=headers_for(trainee))
        assert response.status_code == 403
        assert response.json()["details"] == {"permission": "can_manage_documents"}

    async def test_trainee_can_read(self, client, qa_manager, trainee, headers_for):
        await client.post("/api/documents", json=self.DOCUMENT, headers=headers_for(qa_manager))
        response = await client.get("/api/documents", headers=headers_for(trainee))
        assert response.status_code == 200
        assert len(response.json()) == 1

    async def test_missing_document(self, client, qa_manager, headers_for):
        response = await client.get(
            "/api/documents/00000000-0000-0000-0000-000000000000", headers=headers_for(qa_manager)
        )
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"


class TestOtherModules:
    """Тесты для CAPA, change control и аудитов."""

    async def test_capa_linear_workflow(self, client, qa_manager, headers_for):
        headers = headers_for(qa_manager)
        capa = (
            await client.post(
                "/api/capas",
                json={"title": "Second-person check", "description": "Verify calculations", "type": "Preventive"},
                headers=headers,
            )
        ).json()
        assert capa["capa_number"].startswith("CAPA-")

        url = f"/api/capas/{capa['id']}/status"
        for target in ("investigation", "action_plan", "implementation", "effectiveness_check"):
            response = await client.patch(url, json={"status": target}, headers=headers)
            assert response.status_code == 200
        completed = await client.patch(
            url,
            json={"status": "completed", "effectiveness_result": "Effective"},
            headers=headers,
        )

        assert completed.json()["status"] == "completed"
        assert completed.json()["completion_date"] is not None

    async def test_change_control_number(self, client, qa_manager, headers_for):
        response = await client.post(
            "/api/change-controls",
            json={"title": "New dispensing software", "description": "Migration", "change_type": "System"},
            headers=headers_for(qa_manager),
        )
        assert response.status_code == 201
        assert response.json()["change_number"].startswith("CC-")
        assert response.json()["status"] == "initiated"

    async def test_audit_create(self, client, qa_manager, headers_for):
        response = await client.post(
            "/api/audits",
            json={
                "title": "Annual GPP self-inspection",
                "audit_type": "Self-Inspection",
                "scope": "Storage and dispensing",
                "scheduled_date": "2025-09-01",
            },
            headers=headers_for(qa_manager),
        )
        assert response.status_code == 201
        assert response.json()["status"] == "planned"
        assert response.json()["audit_number"].startswith("AUD-")
