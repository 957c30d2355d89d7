"""Tests for package generation, status, content and email routes."""

from uuid import uuid4

import httpx
import pytest
import respx
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from mystery.api.deps import get_email_client_dep
from mystery.db.models import MysteryCharacter, MysteryPackage
from mystery.services.email import EmailClient
from mystery.services.generation_client import FakeGenerationClient
from tests.factories import (
    create_complete_package,
    create_test_conversation,
    status_document,
)

RESEND_URL = "https://api.resend.test/emails"


def _first_character(db: Session, package_id) -> MysteryCharacter:
    return db.scalars(
        select(MysteryCharacter)
        .where(MysteryCharacter.package_id == package_id)
        .order_by(MysteryCharacter.position)
    ).first()


class TestGenerateRoutes:
    """Tests for POST /conversations/{id}/package/generate and /resume"""

    def test_generate_starts_job(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)

        response = client.post(
            f"/conversations/{conversation_id}/package/generate", json={"testMode": True}
        )

        assert response.status_code == 200
        assert response.json()["data"] == {"outcome": "started", "queued": False}
        assert generation_client.calls == [(conversation_id, True)]

        status = client.get(f"/conversations/{conversation_id}/package/status").json()["data"]
        assert status["status"] == "in_progress"
        assert status["progress"] == 20

    def test_generate_without_body_uses_configured_mode(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)

        response = client.post(f"/conversations/{conversation_id}/package/generate")

        assert response.status_code == 200
        assert generation_client.calls == [(conversation_id, False)]

    def test_generate_twice_triggers_once(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)

        client.post(f"/conversations/{conversation_id}/package/generate")
        response = client.post(f"/conversations/{conversation_id}/package/generate")

        assert response.json()["data"]["outcome"] == "already_in_progress"
        assert generation_client.call_count(conversation_id) == 1

    def test_completed_package_is_not_regenerated(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(
            db_session, conversation_id, status=status_document("completed", 100)
        )

        response = client.post(f"/conversations/{conversation_id}/package/resume")

        assert response.json()["data"]["outcome"] == "already_completed"
        assert generation_client.call_count() == 0

    def test_trigger_failure_returns_502_and_records_failure(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)
        generation_client.fail_with = "Generation service unreachable: ConnectError"

        response = client.post(f"/conversations/{conversation_id}/package/generate")

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "E_GENERATION_TRIGGER_FAILED"

        status = client.get(f"/conversations/{conversation_id}/package/status").json()["data"]
        assert status["status"] == "failed"
        assert status["resumable"] is True

        generation_client.fail_with = None
        resumed = client.post(f"/conversations/{conversation_id}/package/resume")
        assert resumed.json()["data"]["outcome"] == "started"

    def test_background_generation_is_accepted(
        self, client: TestClient, db_session: Session, generation_client: FakeGenerationClient
    ):
        conversation_id = create_test_conversation(db_session)

        response = client.post(
            f"/conversations/{conversation_id}/package/generate", json={"background": True}
        )

        assert response.status_code == 202
        # Test environment never enqueues
        assert response.json()["data"] == {"outcome": None, "queued": False}
        assert generation_client.call_count() == 0

    def test_unknown_conversation(self, client: TestClient):
        response = client.post(f"/conversations/{uuid4()}/package/generate")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_CONVERSATION_NOT_FOUND"

    def test_malformed_json(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.post(
            f"/conversations/{conversation_id}/package/generate",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"


class TestStatusRoute:
    """Tests for GET /conversations/{id}/package/status"""

    def test_not_started_without_job(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.get(f"/conversations/{conversation_id}/package/status")

        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "not_started",
            "progress": 0,
            "currentStep": "Not started",
            "sections": {},
        }

    def test_drift_reported_as_completed(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(
            db_session, conversation_id, status=status_document("in_progress", 60)
        )

        data = client.get(f"/conversations/{conversation_id}/package/status").json()["data"]

        assert data["status"] == "completed"
        assert data["progress"] == 100


class TestContentRoutes:
    def test_package_content(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(db_session, conversation_id)

        response = client.get(f"/conversations/{conversation_id}/package")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Murder at the Blue Parrot"
        assert [c["name"] for c in data["characters"]] == ["Vera Lark", "Dutch Malone"]

    def test_package_not_found(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.get(f"/conversations/{conversation_id}/package")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_PACKAGE_NOT_FOUND"

    def test_character_guide(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        character = _first_character(db_session, package_id)

        response = client.get(
            f"/conversations/{conversation_id}/package/characters/{character.id}/guide"
        )

        assert response.status_code == 200
        markdown = response.json()["data"]["markdown"]
        assert markdown.startswith("# Vera Lark - Character Guide\n\n")

    def test_assign_character(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        character = _first_character(db_session, package_id)

        response = client.put(
            f"/conversations/{conversation_id}/package/characters/{character.id}/assignment",
            json={"guest_name": "June", "guest_email": "june@example.com", "notify": True},
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["guest_email"] == "june@example.com"
        assert data["email_queued"] is False

    def test_assign_rejects_bad_email(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        character = _first_character(db_session, package_id)

        response = client.put(
            f"/conversations/{conversation_id}/package/characters/{character.id}/assignment",
            json={"guest_name": "June", "guest_email": "not-an-email"},
        )

        assert response.status_code == 400


class TestEmailRoutes:
    @pytest.fixture
    def email_app(self, app: FastAPI) -> FastAPI:
        app.dependency_overrides[get_email_client_dep] = lambda: EmailClient(
            api_key="re_test", sender="noreply@mystery.test", api_url=RESEND_URL
        )
        return app

    def test_not_configured_returns_503(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(db_session, conversation_id)

        response = client.post(f"/conversations/{conversation_id}/package/emails/host")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "E_EMAIL_NOT_CONFIGURED"

    def test_missing_host_email_returns_400(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session, host_email=None)
        create_complete_package(db_session, conversation_id)

        response = client.post(f"/conversations/{conversation_id}/package/emails/host")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_EMAIL_RECIPIENT_MISSING"

    @respx.mock
    def test_host_emails_sent(self, email_app: FastAPI, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(db_session, conversation_id)
        route = respx.post(RESEND_URL).mock(
            side_effect=[
                httpx.Response(200, json={"id": "a"}),
                httpx.Response(200, json={"id": "b"}),
            ]
        )

        with TestClient(email_app) as client:
            response = client.post(f"/conversations/{conversation_id}/package/emails/host")

        assert response.status_code == 200
        assert response.json()["data"]["success"] is True
        assert route.call_count == 2

    @respx.mock
    def test_character_email_failure_returns_502(self, email_app: FastAPI, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        character = _first_character(db_session, package_id)
        character.guest_name = "June"
        character.guest_email = "june@example.com"
        db_session.commit()
        respx.post(RESEND_URL).respond(500, text="upstream error")

        with TestClient(email_app) as client:
            response = client.post(
                f"/conversations/{conversation_id}/package/characters/{character.id}/email"
            )

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "E_EMAIL_SEND_FAILED"

    def test_host_emails_in_background(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_complete_package(db_session, conversation_id)

        response = client.post(
            f"/conversations/{conversation_id}/package/emails/host", params={"background": "true"}
        )

        assert response.status_code == 202
        assert response.json()["data"] == {"queued": False}


class TestAccessRoutes:
    def test_host_access(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        token = db_session.get(MysteryPackage, package_id).host_access_token

        response = client.get(f"/access/host/{token}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["title"] == "Murder at the Blue Parrot"
        assert data["host_guide_markdown"].startswith("# Host Guide")

    def test_character_access(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        character = _first_character(db_session, package_id)

        response = client.get(f"/access/character/{character.access_token}")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["character"]["name"] == "Vera Lark"
        assert "guest_email" in data["character"]

    def test_invalid_token(self, client: TestClient):
        response = client.get("/access/character/not-a-token")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_ACCESS_TOKEN_INVALID"
