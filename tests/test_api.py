"""HTTP-level tests through FastAPI's TestClient."""

import uuid

import pytest

PROJECT = {
    "project_name": "Payments Revamp",
    "department": "Finance",
    "tech_department": "Core Banking",
    "project_owner": "Asha",
    "project_owner_primary_email": "asha@example.com",
    "business_owner": "Ravi",
    "business_owner_alternate_email": "",
    "start_date": "2025-01-01",
    "end_date": "2025-04-10",
}


@pytest.fixture
def project(client):
    response = client.post("/api/v1/projects", json=PROJECT)
    assert response.status_code == 201
    return response.json()["data"]


def _save_body(project):
    return {
        "start_date": project["start_date"],
        "end_date": project["end_date"],
        "priority": project["priority"],
        "overall_project_summary": project["overall_project_summary"],
        "stages": project["stages"],
        "logs": [],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


class TestProjects:
    def test_create(self, project):
        assert project["project_id"] == "PRJ001"
        assert project["project_owner_primary_email"] == "asha@example.com"
        assert project["business_owner_alternate_email"] == ""
        assert [s["weight"] for s in project["stages"]] == [10, 5, 15, 5, 55, 5, 5]

    def test_create_requires_admin(self, client):
        response = client.post("/api/v1/projects", json=PROJECT, headers={"X-User-Role": "hod"})
        assert response.status_code == 403

    def test_unknown_role(self, client):
        response = client.post("/api/v1/projects", json=PROJECT, headers={"X-User-Role": "guest"})
        assert response.status_code == 403

    def test_invalid_email(self, client):
        body = dict(PROJECT, project_owner_primary_email="not-an-email")
        assert client.post("/api/v1/projects", json=body).status_code == 422

    def test_invalid_priority(self, client):
        body = dict(PROJECT, priority="P9")
        assert client.post("/api/v1/projects", json=body).status_code == 422

    def test_end_before_start(self, client):
        body = dict(PROJECT, start_date="2025-05-01")
        response = client.post("/api/v1/projects", json=body)
        assert response.status_code == 422
        assert "end_date" in response.json()["detail"]

    def test_get(self, client, project):
        response = client.get(f"/api/v1/projects/{project['id']}")
        assert response.status_code == 200
        assert response.json()["data"]["project_name"] == "Payments Revamp"

    def test_get_missing(self, client):
        assert client.get(f"/api/v1/projects/{uuid.uuid4()}").status_code == 404

    def test_list_filters(self, client, project):
        assert len(client.get("/api/v1/projects").json()["data"]) == 1
        assert client.get("/api/v1/projects", params={"status": "delayed"}).json()["data"] == []
        found = client.get("/api/v1/projects", params={"search": "prj001"}).json()["data"]
        assert [p["project_id"] for p in found] == ["PRJ001"]

    def test_list_unknown_filter(self, client):
        assert client.get("/api/v1/projects", params={"status": "archived"}).status_code == 422

    def test_delete(self, client, project):
        response = client.delete(f"/api/v1/projects/{project['id']}")
        assert response.status_code == 200
        assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404

    def test_hod_cannot_delete(self, client, project):
        response = client.delete(
            f"/api/v1/projects/{project['id']}", headers={"X-User-Role": "hod"}
        )
        assert response.status_code == 403


class TestStages:
    def test_save_logs_changes(self, client, project):
        body = _save_body(project)
        body["stages"][0]["status"] = "Completed"
        body["stages"][0]["stage_owner"] = "Meera"

        response = client.patch(
            f"/api/v1/projects/{project['id']}/stages",
            json=body,
            headers={"X-User-Name": "Meera"},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["project"]["progress"] == 10
        assert [c["field_name"] for c in data["changes"]] == ["Status", "Stage Owner"]

        logs = client.get(f"/api/v1/projects/{project['id']}/logs").json()["data"]
        assert {(e["stage_name"], e["field_name"], e["changed_by"]) for e in logs} == {
            ("Concept", "Status", "Meera"),
            ("Concept", "Stage Owner", "Meera"),
        }

    def test_save_with_pending_records(self, client, project):
        body = _save_body(project)
        body["stages"][0]["weight"] = 5
        body["logs"] = [
            {"field_name": "Weight", "previous_value": "10%", "new_value": "5%", "stage_name": "Concept"}
        ]
        response = client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)
        assert response.json()["data"]["changes"] == [
            {"field_name": "Weight", "previous_value": "10%", "new_value": "5%", "stage_name": "Concept"}
        ]

    def test_save_milestones(self, client, project):
        body = _save_body(project)
        body["stages"][5]["milestones"] = [{"id": 1, "title": "Sign-off", "owner": "Ravi"}]
        response = client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)
        [change] = response.json()["data"]["changes"]
        assert change == {
            "field_name": "Milestone Added",
            "previous_value": "(empty)",
            "new_value": "Sign-off",
            "stage_name": "UAT - Sign-off",
        }
        stored = client.get(f"/api/v1/projects/{project['id']}").json()["data"]
        assert stored["stages"][5]["milestones"][0]["owner"] == "Ravi"

    def test_weight_total_above_hundred(self, client, project):
        body = _save_body(project)
        body["stages"][0]["weight"] = 60
        response = client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)
        assert response.status_code == 422
        assert "100%" in response.json()["detail"]

    def test_invalid_stage_status(self, client, project):
        body = _save_body(project)
        body["stages"][0]["status"] = "Paused"
        response = client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)
        assert response.status_code == 422

    def test_hod_cannot_save(self, client, project):
        response = client.patch(
            f"/api/v1/projects/{project['id']}/stages",
            json=_save_body(project),
            headers={"X-User-Role": "hod"},
        )
        assert response.status_code == 403

    def test_priority(self, client, project):
        response = client.patch(
            f"/api/v1/projects/{project['id']}/priority", json={"priority": "P1"}
        )
        assert response.json()["data"]["project"]["priority"] == "P1"
        [entry] = client.get(f"/api/v1/projects/{project['id']}/logs").json()["data"]
        assert (entry["field_name"], entry["previous_value"], entry["new_value"]) == ("Priority", "P3", "P1")
        assert entry["changed_by"] == "System"

    def test_save_without_priority_keeps_stored_priority(self, client, project):
        client.patch(f"/api/v1/projects/{project['id']}/priority", json={"priority": "P1"})
        body = _save_body(project)
        del body["priority"]
        body["overall_project_summary"] = "Kick-off done"

        response = client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)

        data = response.json()["data"]
        assert data["project"]["priority"] == "P1"
        assert [c["field_name"] for c in data["changes"]] == ["Overall Project Summary"]

    def test_calculate_dates(self, client, project):
        response = client.post(f"/api/v1/projects/{project['id']}/stages/calculate-dates")
        assert response.status_code == 200
        plan = response.json()["data"]
        assert (plan[0]["start_date"], plan[0]["end_date"], plan[0]["days"]) == (
            "2025-01-01",
            "2025-01-10",
            10,
        )
        assert plan[-1]["end_date"] == "2025-04-10"
        assert [r["percentage"] for r in plan[0]["milestone_ranges"]] == [20, 20, 20, 20, 20]
        assert plan[0]["milestone_ranges"][-1]["end_date"] == "2025-01-10"

    def test_calculate_dates_with_overrides(self, client, project):
        response = client.post(
            f"/api/v1/projects/{project['id']}/stages/calculate-dates",
            json={"start_date": "2025-02-01", "end_date": "2025-02-10"},
        )
        plan = response.json()["data"]
        assert plan[0]["start_date"] == "2025-02-01"
        assert plan[-1]["end_date"] == "2025-02-10"

    def test_calculate_dates_without_range(self, client):
        body = dict(PROJECT, start_date="", end_date="")
        created = client.post("/api/v1/projects", json=body).json()["data"]
        response = client.post(f"/api/v1/projects/{created['id']}/stages/calculate-dates")
        assert response.status_code == 422


class TestLogs:
    def test_dates_are_shown_day_first(self, client, project):
        body = _save_body(project)
        body["stages"][0]["actual_start_date"] = "2025-01-02"
        client.patch(f"/api/v1/projects/{project['id']}/stages", json=body)

        [entry] = client.get(f"/api/v1/projects/{project['id']}/logs").json()["data"]
        assert (entry["previous_value"], entry["new_value"]) == ("(empty)", "02-01-2025")
        assert entry["project_name"] == "Payments Revamp"

    def test_missing_project(self, client):
        assert client.get(f"/api/v1/projects/{uuid.uuid4()}/logs").status_code == 404


class TestDashboard:
    def test_stats(self, client, project):
        data = client.get("/api/v1/dashboard").json()["data"]
        assert data == {
            "total": 1,
            "completed": 0,
            "in_progress": 0,
            "delayed": 0,
            "yet_to_start": 1,
        }

    def test_departments(self, client, project):
        assert client.get("/api/v1/departments").json()["data"] == [
            {
                "department": "Finance",
                "owner": "Asha",
                "project_count": 1,
                "is_first_in_department": True,
            }
        ]
