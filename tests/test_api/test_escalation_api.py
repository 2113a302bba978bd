"""
Tests for Escalation API endpoints.

Covers:
- POST /api/v1/escalations
- POST /api/v1/escalations/batch
- POST /api/v1/escalations/students
- POST /api/v1/escalations/guardians (+ attendance, performance)
"""

import pytest


@pytest.mark.asyncio
async def test_escalate_single_event(client, smtp):
    response = await client.post(
        "/api/v1/escalations",
        json={"studentId": "stu-1", "riskLevel": "HIGH", "reason": "Failing three subjects."},
    )
    assert response.status_code == 200, f"Response: {response.text}"
    data = response.json()
    assert data["student_id"] == "stu-1"
    assert data["risk_level"] == "HIGH"
    assert data["admin"]["action"] == "created"
    assert data["admin"]["notification"]["priority"] == "HIGH"
    assert data["guardian"]["status"] == "DELIVERED"
    assert len(data["guardian"]["attempts"]) == 3
    assert data["error"] is None
    assert len(smtp.messages) == 1


@pytest.mark.asyncio
async def test_escalate_accepts_snake_case_and_lowercase_level(client):
    response = await client.post("/api/v1/escalations", json={"student_id": "stu-3", "risk_level": "medium"})
    assert response.status_code == 200
    data = response.json()
    assert data["risk_level"] == "MEDIUM"
    assert data["guardian"] is None
    assert data["guardian_skipped_reason"] == "MEDIUM risk does not notify guardians"


@pytest.mark.asyncio
async def test_missing_level_is_rejected(client):
    response = await client.post("/api/v1/escalations", json={"studentId": "stu-1"})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E2000"


@pytest.mark.asyncio
async def test_unknown_level_is_rejected(client):
    response = await client.post("/api/v1/escalations", json={"studentId": "stu-1", "riskLevel": "SEVERE"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"]["code"] == "E2000"
    assert body["request_id"]
    assert response.headers["X-Request-ID"] == body["request_id"]


@pytest.mark.asyncio
async def test_unknown_student_is_reported_in_result(client):
    response = await client.post("/api/v1/escalations", json={"studentId": "ghost", "riskLevel": "HIGH"})
    assert response.status_code == 200
    assert response.json()["error"]["code"] == "E4000"


@pytest.mark.asyncio
async def test_missing_student_id_is_validation_error(client):
    response = await client.post("/api/v1/escalations", json={"riskLevel": "HIGH"})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_batch(client):
    response = await client.post(
        "/api/v1/escalations/batch",
        json={
            "events": [
                {"studentId": "stu-1", "riskLevel": "CRITICAL"},
                {"studentId": "stu-2", "riskLevel": "NOPE"},
                {"studentId": "ghost", "riskLevel": "HIGH"},
                {"studentId": "stu-3", "riskLevel": "LOW"},
            ]
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 4
    assert data["failed"] == 2
    assert [r["student_id"] for r in data["results"]] == ["stu-1", "stu-2", "ghost", "stu-3"]
    assert data["results"][0]["admin"]["notification"]["priority"] == "URGENT"
    assert data["results"][1]["error"]["code"] == "E2000"
    assert data["results"][2]["error"]["code"] == "E4000"
    assert data["results"][3]["admin"]["action"] == "skipped"


@pytest.mark.asyncio
async def test_empty_batch_is_validation_error(client):
    response = await client.post("/api/v1/escalations/batch", json={"events": []})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_escalate_students(client):
    response = await client.post(
        "/api/v1/escalations/students",
        json={"studentIds": ["stu-1", "stu-3"], "riskLevel": "MEDIUM", "reason": "Mid-term review"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert data["failed"] == 0
    assert all(r["admin"]["action"] == "created" for r in data["results"])


@pytest.mark.asyncio
async def test_escalate_students_bad_level(client):
    response = await client.post(
        "/api/v1/escalations/students",
        json={"studentIds": ["stu-1"], "riskLevel": "whatever"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "E2000"


@pytest.mark.asyncio
async def test_alert_guardians(client, twilio):
    twilio.fail_numbers.add("+250788765432")
    response = await client.post(
        "/api/v1/escalations/guardians",
        json={"studentId": "stu-1", "riskLevel": "CRITICAL"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "PARTIAL"
    assert data["guardian_count"] == 2
    failed = [a for a in data["attempts"] if not a["success"]]
    assert len(failed) == 1
    assert failed[0]["error_code"] == "21211"


@pytest.mark.asyncio
async def test_alert_guardians_unknown_student(client):
    response = await client.post(
        "/api/v1/escalations/guardians",
        json={"studentId": "ghost", "riskLevel": "HIGH"},
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "E4000"


@pytest.mark.asyncio
async def test_alert_guardians_no_contacts(client):
    response = await client.post(
        "/api/v1/escalations/guardians",
        json={"studentId": "stu-2", "riskLevel": "HIGH"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "NO_CONTACTS"


@pytest.mark.asyncio
async def test_attendance_alert(client, smtp):
    response = await client.post(
        "/api/v1/escalations/guardians/attendance",
        json={"studentId": "stu-3", "absentDays": 4, "periodDays": 30, "attendanceRate": 86.7},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["risk_level"] == "MEDIUM"
    assert data["description"].startswith("Attendance concerns: 4 days absent")
    assert len(smtp.messages) == 1


@pytest.mark.asyncio
async def test_performance_alert_validates_average(client):
    response = await client.post(
        "/api/v1/escalations/guardians/performance",
        json={"studentId": "stu-3", "declineReason": "a drop in Physics", "currentAverage": 140},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_performance_alert(client):
    response = await client.post(
        "/api/v1/escalations/guardians/performance",
        json={"studentId": "stu-3", "declineReason": "a drop in Physics", "currentAverage": 51},
    )
    assert response.status_code == 200
    assert response.json()["description"] == (
        "Academic performance concerns: Recent grades show a drop in Physics. Current average: 51%"
    )
