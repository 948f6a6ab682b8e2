import pytest
from fastapi.testclient import TestClient

from database import get_db
from main import app


@pytest.fixture
def api(db, hooks):
    app.dependency_overrides[get_db] = lambda: db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def headers(user):
    return {"x-user-id": str(user["_id"])}


def _create_client(api, headers, name="Acme Corp"):
    response = api.post("/api/clients", json={"name": name, "email": "ops@acme.test"}, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


def _create_project(api, headers, client_id, name="Website"):
    response = api.post(f"/api/clients/{client_id}/projects",
                        json={"name": name, "status": "Active", "totalAmount": 10000}, headers=headers)
    assert response.status_code == 201
    return response.json()["data"]


class TestAuth:

    def test_root(self, api):
        assert api.get("/").json() == {"message": "Freelance Tracker Backend is running"}

    def test_missing_header(self, api):
        assert api.get("/api/clients").status_code == 401

    @pytest.mark.parametrize("value", ["garbage", "65f0c0ffee0000000000beef"])
    def test_unknown_user(self, api, value):
        assert api.get("/api/clients", headers={"x-user-id": value}).status_code == 401

    def test_register_and_read_me(self, api):
        created = api.post("/api/users", json={"name": "Mei", "email": "Mei@Example.com", "password": "h"})
        assert created.status_code == 201
        body = created.json()
        assert body["success"] is True
        assert "password" not in body["data"]

        me = api.get("/api/users/me", headers={"x-user-id": body["data"]["id"]})
        assert me.json()["data"]["email"] == "mei@example.com"

    def test_duplicate_registration(self, api, user):
        response = api.post("/api/users", json={"name": "Dup", "email": user["email"], "password": "h"})
        assert response.status_code == 400
        assert response.json() == {"success": False, "message": "User already exists"}


class TestErrorMapping:

    def test_invalid_id_is_400(self, api, headers):
        response = api.get("/api/projects/not-an-id", headers=headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid project id"

    def test_missing_entity_is_404(self, api, headers):
        response = api.get("/api/projects/65f0c0ffee0000000000beef", headers=headers)
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_schema_violation_is_422(self, api, headers):
        response = api.post("/api/expenses", json={"title": "t", "amount": 0, "category": "c"}, headers=headers)
        assert response.status_code == 422

    def test_invalid_month_query_is_422(self, api, headers):
        response = api.get("/api/analytics/revenue-period", headers=headers, params={
            "start_year": 2024, "start_month": "Smarch", "end_year": 2024, "end_month": "June",
        })
        assert response.status_code == 422

    def test_reversed_period_is_400(self, api, headers):
        response = api.get("/api/analytics/revenue-period", headers=headers, params={
            "start_year": 2024, "start_month": "June", "end_year": 2023, "end_month": "June",
        })
        assert response.status_code == 400

    def test_invalid_month_path_is_400(self, api, headers):
        response = api.get("/api/analytics/revenue/2024/Juny", headers=headers)
        assert response.status_code == 400


class TestWorkflow:

    def test_client_project_milestones_and_analytics(self, api, headers, db):
        client = _create_client(api, headers)
        project = _create_project(api, headers, client["id"])
        assert project["status"] == "active"

        bulk = api.post("/api/milestones/bulk", headers=headers, json={
            "projectId": project["id"],
            "clientId": client["id"],
            "milestones": [
                {"name": "Design", "percentage": 40, "amount": 4000, "dueDate": "2099-01-01T00:00:00"},
                {"name": "Build", "percentage": 60, "amount": 6000, "dueDate": "2099-02-01T00:00:00"},
            ],
        })
        assert bulk.status_code == 201
        summary = bulk.json()["data"]["summary"]
        assert summary == {"totalMilestones": 2, "totalAmount": 10000, "totalPercentage": 100}
        design_id = bulk.json()["data"]["project"]["milestones"][0]["_id"]

        achieved = api.put(f"/api/milestones/{design_id}/achieve", headers=headers)
        assert achieved.status_code == 200
        assert achieved.json()["data"]["isAchived"] is True

        paid = api.put(f"/api/milestones/{design_id}/pay", headers=headers, json={"paymentMethod": "UPI"})
        assert paid.json()["data"]["status"] == "Paid"
        assert paid.json()["data"]["paymentMethod"] == "UPI"
        assert api.put(f"/api/milestones/{design_id}/pay", headers=headers).status_code == 400
        assert api.delete(f"/api/milestones/{design_id}", headers=headers).status_code == 400

        listed = api.get(f"/api/clients/{client['id']}/milestones", headers=headers).json()
        assert listed["summary"]["paid"] == 1
        assert listed["summary"]["pending"] == 1

        stats = api.get("/api/milestones/stats", headers=headers).json()["data"]
        assert stats["paidValue"] == 4000

        # Any authenticated request refreshes the caches
        dashboard = api.get("/api/analytics/dashboard-stats", headers=headers).json()["data"]
        assert dashboard["totalClients"] == 1
        assert dashboard["activeProjects"] == 1
        revenue = api.get("/api/analytics/revenue-over-time", headers=headers).json()["data"]
        assert sum(r["revenue"] for r in revenue) == 4000

    def test_over_allocated_milestones_are_rejected(self, api, headers):
        client = _create_client(api, headers)
        project = _create_project(api, headers, client["id"])
        response = api.post("/api/milestones/bulk", headers=headers, json={
            "projectId": project["id"],
            "clientId": client["id"],
            "milestones": [
                {"name": "A", "percentage": 70, "amount": 1, "dueDate": "2099-01-01T00:00:00"},
                {"name": "B", "percentage": 40, "amount": 1, "dueDate": "2099-01-01T00:00:00"},
            ],
        })
        assert response.status_code == 400
        assert "Current total: 110%" in response.json()["message"]

    def test_estimates_and_selection(self, api, headers):
        client = _create_client(api, headers)
        project = _create_project(api, headers, client["id"])
        estimate = {"name": "Basic", "description": "Landing page", "timeline": "2 weeks", "price": 500}

        saved = api.post(f"/api/projects/{project['id']}/estimates", headers=headers,
                         json={"estimates": [estimate, {**estimate, "name": "Pro", "price": 900}]})
        assert saved.status_code == 201
        pro = next(e for e in saved.json()["data"] if e["name"] == "Pro")

        selected = api.put(f"/api/estimates/{pro['id']}/select", headers=headers)
        assert selected.json()["data"]["isSelected"] is True

        dashboard = api.get("/api/analytics/dashboard-stats", headers=headers).json()["data"]
        assert dashboard["totalRevenue"] == 900

    def test_expense_crud_and_breakdown(self, api, headers):
        created = api.post("/api/expenses", headers=headers,
                           json={"title": "Hosting", "amount": 19.995, "category": "Software", "currency": "usd"})
        assert created.status_code == 201
        expense = created.json()["data"]
        assert expense["amount"] == 20.0
        assert expense["currency"] == "USD"

        updated = api.put(f"/api/expenses/{expense['id']}", headers=headers, json={"amount": 25})
        assert updated.json()["data"]["amount"] == 25

        breakdown = api.get("/api/analytics/expense-breakdown", headers=headers).json()["data"]
        assert breakdown == [{"category": "Software", "amount": 25, "count": 1}]

        assert api.delete(f"/api/expenses/{expense['id']}", headers=headers).status_code == 200
        assert api.get("/api/expenses", headers=headers).json()["data"] == []

    def test_delete_client_cascades(self, api, headers, db):
        client = _create_client(api, headers)
        _create_project(api, headers, client["id"])
        _create_project(api, headers, client["id"], name="Second")

        response = api.delete(f"/api/clients/{client['id']}", headers=headers)

        assert response.status_code == 200
        report = response.json()["data"]
        assert report["deleted"] is True
        assert report["cleanups"]["project"] == 2
        assert report["failures"] == {}
        assert db["project"].count_documents({}) == 0

    def test_delete_project_updates_counter(self, api, headers):
        client = _create_client(api, headers)
        project = _create_project(api, headers, client["id"])

        assert api.delete(f"/api/projects/{project['id']}", headers=headers).status_code == 200
        clients = api.get("/api/clients", headers=headers).json()["data"]
        assert clients[0]["projects"] == 0

    def test_delete_me(self, api, headers, user, db):
        api.get("/api/analytics/dashboard-stats", headers=headers)
        response = api.delete("/api/users/me", headers=headers)

        assert response.status_code == 200
        assert db["user"].count_documents({}) == 0
        assert db["dashboard"].count_documents({}) == 0
        assert api.get("/api/users/me", headers=headers).status_code == 401
