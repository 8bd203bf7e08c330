import pytest

from conftest import TEST_PASSWORD, auth_headers
from matrix_ai.config.settings import CATEGORIES
from matrix_ai.db.models.common import Event, EventStatus
from matrix_ai.events.event_bus import EVENT_CREATED, EVENT_STATUS_CHANGED
from matrix_ai.nlp.core.trainer import get_model_trainer
from matrix_ai.nlp.schemas import AnalysisOutcome, EvaluationResult, ModelReport, TrainingResult


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"

def test_categories_require_authentication(client, plain_user):
    assert client.get("/categories").status_code == 401

    response = client.get("/categories", headers=auth_headers(plain_user))
    assert response.status_code == 200
    assert response.json() == {"categories": list(CATEGORIES)}


class TestAuthRoutes:
    def test_register_then_login(self, client):
        response = client.post("/auth/register", json={
            "username": "newcomer", "email": "newcomer@matrixai.io", "password": "hunter22",
        })
        assert response.status_code == 201
        assert response.json()["user"]["role"] == "user"

        response = client.post("/auth/login", json={"username": "newcomer", "password": "hunter22"})
        body = response.json()
        assert response.status_code == 200
        assert body["token"]
        assert body["user"]["lastLogin"] is not None

        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['token']}"})
        assert me.json()["username"] == "newcomer"

    def test_duplicate_registration(self, client, analyst):
        response = client.post("/auth/register", json={
            "username": "analyst", "email": "other@matrixai.io", "password": "hunter22",
        })
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_bad_password(self, client, analyst):
        response = client.post("/auth/login", json={"username": "analyst", "password": "nope"})
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"

    def test_deactivated_login(self, client, make_user):
        make_user("sleeper", is_active=False)
        response = client.post("/auth/login", json={"username": "sleeper", "password": TEST_PASSWORD})
        assert response.status_code == 403

    def test_profile_owner_or_admin(self, client, plain_user, analyst, admin):
        url = f"/auth/users/{plain_user.id}"
        assert client.get(url, headers=auth_headers(plain_user)).status_code == 200
        assert client.get(url, headers=auth_headers(admin)).status_code == 200
        assert client.get(url, headers=auth_headers(analyst)).status_code == 403

    def test_change_password(self, client, plain_user):
        response = client.put(
            "/auth/change-password",
            json={"currentPassword": TEST_PASSWORD, "newPassword": "s3cond-secret"},
            headers=auth_headers(plain_user),
        )
        assert response.status_code == 200
        assert response.json() == {"message": "Password updated successfully"}

        old = client.post("/auth/login", json={"username": "viewer", "password": TEST_PASSWORD})
        assert old.status_code == 401
        new = client.post("/auth/login", json={"username": "viewer", "password": "s3cond-secret"})
        assert new.status_code == 200

    def test_change_password_rejects_wrong_current_password(self, client, plain_user):
        body = {"currentPassword": "not-it", "newPassword": "s3cond-secret"}
        assert client.put("/auth/change-password", json=body).status_code == 401

        response = client.put("/auth/change-password", json=body, headers=auth_headers(plain_user))
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Current password is incorrect"}

        login = client.post("/auth/login", json={"username": "viewer", "password": TEST_PASSWORD})
        assert login.status_code == 200


class TestAnalyze:
    def test_requires_authentication(self, client):
        response = client.post("/analyze", json={"text": "hello"})
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Authentication required"}

    @pytest.mark.parametrize("text", ["", "   "])
    def test_empty_text(self, client, plain_user, stub_analyzer, text):
        response = client.post("/analyze", json={"text": text}, headers=auth_headers(plain_user))
        assert response.status_code == 400
        assert stub_analyzer.calls == []

    def test_analysis_only(self, client, db, plain_user):
        response = client.post("/analyze", json={"text": "attack"}, headers=auth_headers(plain_user))

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"analysis"}
        assert body["analysis"]["threatLevel"] == "high"
        assert body["analysis"]["classification"]["topCategory"] == "security_threat"
        assert db.query(Event).count() == 0

    def test_creates_event_for_analyst(self, client, db, analyst, source, published):
        response = client.post(
            "/analyze", json={"text": "attack", "sourceId": source.id}, headers=auth_headers(analyst)
        )

        assert response.status_code == 200
        event = response.json()["event"]
        assert event["status"] == "new"
        assert event["severity"] == "high"
        assert event["sourceId"] == source.id
        assert event["metadata"]["analysis"]["text"] == "attack"
        assert db.query(Event).count() == 1
        assert [kind for kind, _ in published] == [EVENT_CREATED]

    def test_event_creation_needs_analyst_role(self, client, db, plain_user, source, stub_analyzer):
        response = client.post(
            "/analyze", json={"text": "attack", "sourceId": source.id}, headers=auth_headers(plain_user)
        )
        assert response.status_code == 403
        assert stub_analyzer.calls == []
        assert db.query(Event).count() == 0

    def test_unknown_source(self, client, analyst):
        response = client.post(
            "/events/analyze", json={"text": "attack", "sourceId": "missing"}, headers=auth_headers(analyst)
        )
        assert response.status_code == 404

    def test_classifier_failure(self, client, plain_user, stub_analyzer):
        stub_analyzer.outcome = AnalysisOutcome(success=False, error="Model file is unreadable")
        response = client.post("/analyze", json={"text": "attack"}, headers=auth_headers(plain_user))
        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Model file is unreadable"}


class TestEventRoutes:
    @pytest.fixture
    def event_id(self, client, analyst, source):
        response = client.post(
            "/analyze", json={"text": "attack", "sourceId": source.id}, headers=auth_headers(analyst)
        )
        return response.json()["event"]["id"]

    def test_transition_with_comment(self, client, analyst, event_id, published):
        response = client.put(
            f"/events/{event_id}/status",
            json={"status": "resolved", "comment": "handled"},
            headers=auth_headers(analyst),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["event"]["status"] == "resolved"
        assert body["event"]["resolvedBy"] == analyst.id
        assert body["event"]["resolvedAt"] is not None
        assert published[-1][0] == EVENT_STATUS_CHANGED

        detail = client.get(f"/events/{event_id}", headers=auth_headers(analyst)).json()
        assert detail["metadata"]["comments"][0]["text"] == "handled"

    def test_invalid_status(self, client, analyst, event_id):
        response = client.put(f"/events/{event_id}/status", json={"status": "done"}, headers=auth_headers(analyst))
        assert response.status_code == 400

    def test_unknown_event(self, client, analyst):
        response = client.put("/events/missing/status", json={"status": "resolved"}, headers=auth_headers(analyst))
        assert response.status_code == 404

    def test_plain_user_cannot_transition(self, client, db, plain_user, event_id):
        response = client.put(
            f"/events/{event_id}/status", json={"status": "resolved"}, headers=auth_headers(plain_user)
        )
        assert response.status_code == 403
        assert db.get(Event, event_id).status == EventStatus.NEW

    def test_list_and_stats(self, client, plain_user, event_id, source):
        listing = client.get("/events", params={"sourceId": source.id}, headers=auth_headers(plain_user)).json()
        assert listing["pagination"] == {"total": 1, "page": 1, "limit": 20, "pages": 1}
        assert listing["events"][0]["id"] == event_id

        stats = client.get("/events/stats/summary", headers=auth_headers(plain_user)).json()
        assert stats["totalCount"] == 1
        assert stats["byStatus"] == {"new": 1}


class TestModelRoutes:
    @pytest.fixture
    def fake_trainer(self, app):
        class FakeTrainer:
            result = TrainingResult(success=True, epochs=1, final_loss=0.5, final_accuracy=1.0, samples_used=1)
            evaluation = EvaluationResult(success=True, loss=0.4, accuracy=0.75, samples_count=4)
            report = ModelReport(success=True, training_data_count=3, vocabulary_size=40)

            def train(self, samples, options):
                self.samples = samples
                return self.result

            def evaluate(self, samples):
                self.samples = samples
                return self.evaluation

            def generate_model_report(self):
                return self.report

        trainer = FakeTrainer()
        app.dependency_overrides[get_model_trainer] = lambda: trainer
        return trainer

    def test_train_is_admin_only(self, client, analyst, fake_trainer):
        response = client.post(
            "/model/train",
            json={"trainingData": [{"text": "a", "category": "neutral"}]},
            headers=auth_headers(analyst),
        )
        assert response.status_code == 403

    def test_train(self, client, admin, fake_trainer):
        response = client.post(
            "/model/train",
            json={"trainingData": [{"text": "a", "category": "neutral"}], "options": {"epochs": 1}},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["result"]["samplesUsed"] == 1
        assert fake_trainer.samples[0].category == "neutral"

    def test_train_rejects_empty_data(self, client, admin, fake_trainer):
        response = client.post("/model/train", json={"trainingData": []}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_train_failure(self, client, admin, fake_trainer):
        fake_trainer.result = TrainingResult(success=False, error="Model not found")
        response = client.post(
            "/model/train",
            json={"trainingData": [{"text": "a", "category": "neutral"}]},
            headers=auth_headers(admin),
        )
        assert response.status_code == 500
        assert response.json() == {"message": "Model training failed", "error": "Model not found"}

    def test_evaluate_is_admin_only(self, client, analyst, fake_trainer):
        response = client.post(
            "/model/evaluate",
            json={"testData": [{"text": "a", "category": "neutral"}]},
            headers=auth_headers(analyst),
        )
        assert response.status_code == 403

    def test_evaluate(self, client, admin, fake_trainer):
        response = client.post(
            "/model/evaluate",
            json={"testData": [{"text": "a", "category": "neutral"}]},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Model evaluated successfully"
        assert body["result"]["accuracy"] == 0.75
        assert body["result"]["samplesCount"] == 4
        assert fake_trainer.samples[0].text == "a"

    def test_evaluate_rejects_empty_data(self, client, admin, fake_trainer):
        response = client.post("/model/evaluate", json={"testData": []}, headers=auth_headers(admin))
        assert response.status_code == 400

    def test_evaluate_failure(self, client, admin, fake_trainer):
        fake_trainer.evaluation = EvaluationResult(success=False, error="Model not found")
        response = client.post(
            "/model/evaluate",
            json={"testData": [{"text": "a", "category": "neutral"}]},
            headers=auth_headers(admin),
        )
        assert response.status_code == 500
        assert response.json() == {"message": "Model evaluation failed", "error": "Model not found"}

    def test_model_info(self, client, plain_user, fake_trainer):
        assert client.get("/model/info").status_code == 401

        response = client.get("/model/info", headers=auth_headers(plain_user))
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["trainingDataCount"] == 3
        assert body["vocabularySize"] == 40
        assert body["modelInfo"] == {"exists": False, "size": 0, "lastModified": None}
