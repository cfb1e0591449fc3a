"""Тесты для API обучения: тренинг, материалы, экзамен, назначение, сертификат."""

import pytest

from qms.db.enums import UserRole

TRAINING = {
    "title": "Cold Chain Management",
    "description": "Handling of temperature-sensitive medicines",
    "training_type": "Initial",
    "category": "GMP",
    "target_roles": ["trainee", "technician"],
    "certificate_template": {"title": "Certificate of Completion", "signature_name": "QA Lead"},
}

EXAM = {
    "title": "Cold Chain Assessment",
    "passing_score": 50,
    "max_attempts": 2,
    "questions": [
        {
            "question_text": "Storage range for refrigerated medicines?",
            "options": ["0-4 C", "2-8 C", "8-15 C"],
            "correct_answers": [1],
        },
        {
            "question_text": "An excursion must be documented as a deviation.",
            "question_type": "true_false",
            "options": ["True", "False"],
            "correct_answers": [0],
        },
    ],
}


@pytest.fixture
async def manager_headers(qa_manager, headers_for):
    return headers_for(qa_manager)


async def _create_training(client, headers, with_exam: bool = True) -> dict:
    training = (await client.post("/api/trainings", json=TRAINING, headers=headers)).json()
    tid = training["id"]
    await client.post(
        f"/api/trainings/{tid}/content",
        json={"title": "Why the cold chain matters", "content_type": "video", "duration": 2},
        headers=headers,
    )
    await client.post(
        f"/api/trainings/{tid}/content",
        json={
            "title": "Fridge monitoring",
            "content_type": "ppt",
            "slides": [{"slide_number": 1}, {"slide_number": 2}],
        },
        headers=headers,
    )
    if with_exam:
        response = await client.post(f"/api/trainings/{tid}/exam", json=EXAM, headers=headers)
        assert response.status_code == 201
    await client.patch(f"/api/trainings/{tid}/status", json={"status": "published"}, headers=headers)
    return training


class TestTrainingAdmin:
    """Тесты для управления тренингами."""

    async def test_create_training(self, client, manager_headers):
        response = await client.post("/api/trainings", json=TRAINING, headers=manager_headers)

        assert response.status_code == 201
        training = response.json()
        assert training["training_number"].startswith("TRN-")
        assert training["status"] == "draft"
        assert training["target_roles"] == ["trainee", "technician"]

    async def test_trainee_cannot_create(self, client, trainee, headers_for):
        response = await client.post("/api/trainings", json=TRAINING, headers=headers_for(trainee))
        assert response.status_code == 403

    async def test_content_order_and_reorder(self, client, manager_headers):
        training = await _create_training(client, manager_headers, with_exam=False)
        url = f"/api/trainings/{training['id']}/content"

        contents = (await client.get(url, headers=manager_headers)).json()
        assert [c["order"] for c in contents] == [0, 1]
        assert contents[1]["slide_count"] == 2

        reversed_ids = [contents[1]["id"], contents[0]["id"]]
        reordered = await client.put(
            f"{url}/reorder", json={"content_ids": reversed_ids}, headers=manager_headers
        )
        assert [c["id"] for c in reordered.json()] == reversed_ids

        partial = await client.put(
            f"{url}/reorder", json={"content_ids": reversed_ids[:1]}, headers=manager_headers
        )
        assert partial.status_code == 400

    async def test_delete_content_renumbers(self, client, manager_headers):
        training = await _create_training(client, manager_headers, with_exam=False)
        url = f"/api/trainings/{training['id']}/content"
        contents = (await client.get(url, headers=manager_headers)).json()

        response = await client.delete(f"{url}/{contents[0]['id']}", headers=manager_headers)
        assert response.status_code == 204

        remaining = (await client.get(url, headers=manager_headers)).json()
        assert [(c["id"], c["order"]) for c in remaining] == [(contents[1]["id"], 0)]

    async def test_upload_and_download(self, client, manager_headers):
        training = (await client.post("/api/trainings", json=TRAINING, headers=manager_headers)).json()
        url = f"/api/trainings/{training['id']}/content"

        response = await client.post(
            f"{url}/upload",
            files={"file": ("cold chain.pdf", b"%PDF-1.4 test", "application/pdf")},
            data={"title": "Cold chain SOP", "content_type": "pdf"},
            headers=manager_headers,
        )
        assert response.status_code == 201
        content = response.json()
        assert content["file_name"] == "cold chain.pdf"
        assert content["file_size"] == len(b"%PDF-1.4 test")

        download = await client.get(f"{url}/{content['id']}/file", headers=manager_headers)
        assert download.status_code == 200
        assert download.content == b"%PDF-1.4 test"

    async def test_upload_rejects_extension(self, client, manager_headers):
        training = (await client.post("/api/trainings", json=TRAINING, headers=manager_headers)).json()
        response = await client.post(
            f"/api/trainings/{training['id']}/content/upload",
            files={"file": ("script.exe", b"MZ", "application/octet-stream")},
            data={"title": "Bad", "content_type": "document"},
            headers=manager_headers,
        )
        assert response.status_code == 400

    async def test_second_exam_conflicts(self, client, manager_headers):
        training = await _create_training(client, manager_headers)
        response = await client.post(
            f"/api/trainings/{training['id']}/exam", json=EXAM, headers=manager_headers
        )
        assert response.status_code == 409

    async def test_exam_sets_assessment_required(self, client, manager_headers):
        training = await _create_training(client, manager_headers)
        fetched = (await client.get(f"/api/trainings/{training['id']}", headers=manager_headers)).json()
        assert fetched["assessment_required"] is True
        assert fetched["passing_score"] == 50


class TestTrainingFlow:
    """Тесты для прохождения тренинга пользователем."""

    async def test_full_flow(self, client, manager_headers, trainee, headers_for):
        training = await _create_training(client, manager_headers)
        assigned = await client.post(
            "/api/training-assignments/assign",
            json={"training_id": training["id"], "user_ids": [str(trainee.id)]},
            headers=manager_headers,
        )
        assert assigned.status_code == 201
        assignment_id = assigned.json()["assigned"][0]["id"]

        headers = headers_for(trainee)
        mine = (await client.get("/api/training-assignments/my", headers=headers)).json()
        assert [m["assignment"]["id"] for m in mine] == [assignment_id]
        assert mine[0]["training"]["title"] == TRAINING["title"]

        details = (await client.get(f"/api/training-assignments/{assignment_id}", headers=headers)).json()
        assert [c["can_access"] for c in details["contents"]] == [True, False]
        assert details["exam"]["passing_score"] == 50
        video_id, deck_id = (c["content"]["id"] for c in details["contents"])

        base = f"/api/training-assignments/{assignment_id}/content"
        locked = await client.post(f"{base}/{deck_id}/complete", json={"viewed_slides": 2}, headers=headers)
        assert locked.status_code == 400

        response = await client.post(
            f"{base}/{video_id}/complete", json={"time_spent": 100, "playback_ratio": 0.95}, headers=headers
        )
        assert response.json()["status"] == "in_progress"
        response = await client.post(f"{base}/{deck_id}/complete", json={"viewed_slides": 2}, headers=headers)
        assert response.json()["status"] == "exam_pending"

        take = (await client.get(f"/api/exams/{assignment_id}/take", headers=headers)).json()
        assert take["attempts_remaining"] == 2
        assert all("correct_answers" not in q for q in take["questions"])

        attempt = (await client.post(f"/api/exams/{assignment_id}/start", headers=headers)).json()
        assert [q["id"] for q in attempt["questions"]] == ["q1", "q2"]
        answers = [
            {"question_id": "q1", "selected_answers": [1]},
            {"question_id": "q2", "selected_answers": [0]},
        ]
        result = await client.post(
            f"/api/exams/attempts/{attempt['attempt_id']}/submit", json={"answers": answers}, headers=headers
        )
        body = result.json()
        assert result.status_code == 200
        assert body["passed"] is True
        assert body["score"] >= 50
        assert body["certificate_id"] is not None

        certificates = (await client.get("/api/certificates/my", headers=headers)).json()
        assert len(certificates) == 1
        assert certificates[0]["state"] == "valid"

        verify = await client.get(f"/api/certificates/verify/{certificates[0]['verification_code']}")
        assert verify.status_code == 200
        assert verify.json()["valid"] is True

        docx = await client.get(f"/api/certificates/{certificates[0]['id']}/docx", headers=headers)
        assert docx.status_code == 200
        assert "attachment" in docx.headers["content-disposition"]

        participants = (
            await client.get(f"/api/trainings/{training['id']}/participants", headers=manager_headers)
        ).json()
        assert participants["completed_by"] == [str(trainee.id)]

    async def test_assign_by_role(self, client, tenant, manager_headers, make_user):
        training = await _create_training(client, manager_headers)
        await make_user(tenant, UserRole.TECHNICIAN)
        await make_user(tenant, UserRole.TECHNICIAN)

        response = await client.post(
            "/api/training-assignments/assign",
            json={"training_id": training["id"], "role_filter": "technician"},
            headers=manager_headers,
        )

        assert len(response.json()["assigned"]) == 2
        listed = (
            await client.get(
                "/api/training-assignments", params={"training_id": training["id"]}, headers=manager_headers
            )
        ).json()
        assert len(listed) == 2
        assert {item["user"]["department"] for item in listed} == {"Dispensary"}

    async def test_trainee_cannot_assign(self, client, manager_headers, trainee, headers_for):
        training = await _create_training(client, manager_headers)
        response = await client.post(
            "/api/training-assignments/assign",
            json={"training_id": training["id"], "user_ids": [str(trainee.id)]},
            headers=headers_for(trainee),
        )
        assert response.status_code == 403

    async def test_revoke_certificate(self, client, manager_headers, trainee, headers_for):
        training = (await client.post("/api/trainings", json=TRAINING, headers=manager_headers)).json()
        await client.patch(
            f"/api/trainings/{training['id']}/status", json={"status": "published"}, headers=manager_headers
        )
        assignment = (
            await client.post(
                "/api/training-assignments/assign",
                json={"training_id": training["id"], "user_ids": [str(trainee.id)]},
                headers=manager_headers,
            )
        ).json()["assigned"][0]
        started = await client.post(
            f"/api/training-assignments/{assignment['id']}/start", headers=headers_for(trainee)
        )
        certificate_id = started.json()["certificate_id"]
        assert started.json()["status"] == "completed"

        revoked = await client.post(
            f"/api/certificates/{certificate_id}/revoke",
            json={"reason": "Issued in error"},
            headers=manager_headers,
        )
        assert revoked.status_code == 200
        assert revoked.json()["state"] == "revoked"

        forbidden = await client.post(
            f"/api/certificates/{certificate_id}/revoke",
            json={"reason": "Again"},
            headers=headers_for(trainee),
        )
        assert forbidden.status_code == 403
