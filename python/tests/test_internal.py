"""Tests for the internal callback routes used by the generation service.

Tests cover:
- Structured package save through PUT /internal/conversations/{id}/package
- Progress reports through PATCH /internal/conversations/{id}/package/status
- The X-Mystery-Internal header guard in staging / prod
"""

from collections.abc import Generator
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from mystery.config import clear_settings_cache
from tests.factories import (
    create_test_conversation,
    create_test_package,
    package_payload,
    status_document,
)


class TestSavePackage:
    """Tests for PUT /internal/conversations/{id}/package"""

    def test_save_then_read(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.put(
            f"/internal/conversations/{conversation_id}/package", json=package_payload()
        )

        assert response.status_code == 200
        saved = response.json()["data"]
        assert saved["game_overview"] == "A jazz singer is found dead backstage."
        assert len(saved["characters"]) == 2

        status = client.get(f"/conversations/{conversation_id}/package/status").json()["data"]
        assert status["status"] == "completed"

        conversation = client.get(f"/conversations/{conversation_id}").json()["data"]
        assert conversation["is_paid"] is True
        assert conversation["display_status"] == "purchased"

    def test_empty_body_rejected(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.put(f"/internal/conversations/{conversation_id}/package")

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_unknown_conversation(self, client: TestClient):
        response = client.put(f"/internal/conversations/{uuid4()}/package", json=package_payload())

        assert response.status_code == 404


class TestUpdateStatus:
    """Tests for PATCH /internal/conversations/{id}/package/status"""

    def test_progress_report(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        create_test_package(db_session, conversation_id, status=status_document("in_progress", 20))

        response = client.patch(
            f"/internal/conversations/{conversation_id}/package/status",
            json={"progress": 55, "currentStep": "Writing clues", "sections": {"clues": True}},
        )

        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "in_progress",
            "progress": 55,
            "currentStep": "Writing clues",
            "sections": {"clues": True},
        }

    def test_progress_out_of_range(self, client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = client.patch(
            f"/internal/conversations/{conversation_id}/package/status",
            json={"progress": 150},
        )

        assert response.status_code == 400


class TestInternalHeaderGuard:
    """Staging / prod require X-Mystery-Internal."""

    @pytest.fixture
    def prod_client(self, app: FastAPI, monkeypatch) -> Generator[TestClient, None, None]:
        monkeypatch.setenv("MYSTERY_ENV", "prod")
        monkeypatch.setenv("MYSTERY_INTERNAL_SECRET", "s3cret")
        clear_settings_cache()
        with TestClient(app) as client:
            yield client

    def test_missing_header_forbidden(self, prod_client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = prod_client.put(
            f"/internal/conversations/{conversation_id}/package", json=package_payload()
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_INTERNAL_ONLY"
        assert "X-Request-ID" in response.headers

    def test_wrong_header_forbidden(self, prod_client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = prod_client.patch(
            f"/internal/conversations/{conversation_id}/package/status",
            json={"progress": 10},
            headers={"X-Mystery-Internal": "guess"},
        )

        assert response.status_code == 403

    def test_correct_header_allowed(self, prod_client: TestClient, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        response = prod_client.patch(
            f"/internal/conversations/{conversation_id}/package/status",
            json={"status": "in_progress", "progress": 10},
            headers={"X-Mystery-Internal": "s3cret"},
        )

        assert response.status_code == 200

    def test_public_routes_do_not_need_header(self, prod_client: TestClient):
        assert prod_client.get("/health").status_code == 200
