"""Tests for the package content service layer.

Tests cover:
- Structured save normalizes camelCase / snake_case keys
- Characters are replaced wholesale, in payload order
- Save marks the package completed and the conversation purchased
- Progress reports merge into the stored status and never undo completion
- Role-scoped reads by access token
"""

from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from mystery.db.models import Conversation, MysteryCharacter, MysteryPackage
from mystery.errors import ApiErrorCode, InvalidRequestError, NotFoundError
from mystery.schemas.generation import (
    PACKAGE_SECTIONS,
    STEP_COMPLETED,
    GenerationProgressUpdate,
)
from mystery.schemas.package import CharacterAssignment, PackageContentIn
from mystery.services import packages as packages_service
from tests.factories import (
    create_complete_package,
    create_test_conversation,
    create_test_package,
    package_payload,
    status_document,
)


def _characters(db: Session, package_id) -> list[MysteryCharacter]:
    db.expire_all()
    return list(
        db.scalars(
            select(MysteryCharacter)
            .where(MysteryCharacter.package_id == package_id)
            .order_by(MysteryCharacter.position)
        )
    )


class TestPackageContentIn:
    """Key-spelling normalization."""

    def test_camel_and_snake_case_are_equivalent(self):
        camel = PackageContentIn.model_validate(
            {"title": "T", "gameOverview": "O", "hostGuide": "H", "hostingTips": "Tips"}
        )
        snake = PackageContentIn.model_validate(
            {"title": "T", "game_overview": "O", "host_guide": "H", "hosting_tips": "Tips"}
        )
        assert camel == snake

    def test_character_name_aliases(self):
        payload = PackageContentIn.model_validate(
            {
                "characters": [
                    {"name": "A", "round3Guilty": "I did it"},
                    {"character_name": "B", "round3_guilty": "Not me"},
                    {"characterName": "C"},
                ]
            }
        )
        assert [c.name for c in payload.characters] == ["A", "B", "C"]
        assert payload.characters[0].round3_guilty == "I did it"
        assert payload.characters[1].round3_guilty == "Not me"

    def test_blank_strings_become_none(self):
        payload = PackageContentIn.model_validate({"title": "  ", "characters": "not a list"})
        assert payload.title is None
        assert payload.characters == []


class TestSaveStructuredPackage:
    """save_structured_package()"""

    def test_save_stores_content_and_marks_completed(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        payload = PackageContentIn.model_validate(package_payload())

        result = packages_service.save_structured_package(db_session, conversation_id, payload)

        assert result.title == "Murder at the Blue Parrot"
        assert result.game_overview == "A jazz singer is found dead backstage."
        assert result.preparation_instructions == "Print the character guides."
        assert [c.name for c in result.characters] == ["Vera Lark", "Dutch Malone"]
        assert result.characters[0].round2_questions == "Where were you at nine?"
        assert result.characters[1].round2_questions == "Who had keys to the back room?"
        assert result.generation_completed_at is not None

        db_session.expire_all()
        package = db_session.get(MysteryPackage, result.id)
        assert package.generation_status == {
            "status": "completed",
            "progress": 100,
            "currentStep": STEP_COMPLETED,
            "sections": {section: True for section in PACKAGE_SECTIONS},
        }

        conversation = db_session.get(Conversation, conversation_id)
        assert conversation.needs_package_generation is False
        assert conversation.has_complete_package is True
        assert conversation.is_paid is True
        assert conversation.display_status == "purchased"
        assert conversation.title == "Murder at the Blue Parrot"

    def test_save_reuses_latest_package_row(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        package_id = create_test_package(
            db_session, conversation_id, status=status_document("in_progress", 20)
        )

        result = packages_service.save_structured_package(
            db_session, conversation_id, PackageContentIn.model_validate(package_payload())
        )

        assert result.id == package_id

    def test_characters_replaced_wholesale(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(
            db_session, conversation_id, characters=("Old One", "Old Two", "Old Three")
        )

        packages_service.save_structured_package(
            db_session,
            conversation_id,
            PackageContentIn.model_validate(
                package_payload(characters=[{"name": "New One"}, {"description": "Nameless"}])
            ),
        )

        characters = _characters(db_session, package_id)
        assert [c.character_name for c in characters] == ["New One", "Character 2"]
        assert [c.position for c in characters] == [0, 1]

    def test_empty_character_list_keeps_existing(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)

        packages_service.save_structured_package(
            db_session,
            conversation_id,
            PackageContentIn.model_validate(package_payload(characters=[])),
        )

        assert len(_characters(db_session, package_id)) == 2

    def test_existing_conversation_title_kept(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session, title="Hazel's party")

        packages_service.save_structured_package(
            db_session, conversation_id, PackageContentIn.model_validate(package_payload())
        )

        db_session.expire_all()
        assert db_session.get(Conversation, conversation_id).title == "Hazel's party"

    def test_incomplete_payload_is_still_saved(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)

        result = packages_service.save_structured_package(
            db_session,
            conversation_id,
            PackageContentIn.model_validate({"title": "Only a title"}),
        )

        assert result.title == "Only a title"
        assert result.host_guide is None

    def test_missing_payload_rejected(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        with pytest.raises(InvalidRequestError):
            packages_service.save_structured_package(db_session, conversation_id, None)

    def test_unknown_conversation(self, db_session: Session):
        with pytest.raises(NotFoundError) as exc_info:
            packages_service.save_structured_package(
                db_session, uuid4(), PackageContentIn.model_validate(package_payload())
            )
        assert exc_info.value.code == ApiErrorCode.E_CONVERSATION_NOT_FOUND

    def test_save_publishes_change(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        published = []
        notifier.publish = published.append

        packages_service.save_structured_package(
            db_session, conversation_id, PackageContentIn.model_validate(package_payload())
        )

        assert conversation_id in published


class TestUpdateGenerationProgress:
    """update_generation_progress()"""

    def test_fields_merge_into_stored_status(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        create_test_package(
            db_session,
            conversation_id,
            status=status_document(
                "in_progress", 20, "Processing", sections={"hostGuide": False, "clues": False}
            ),
        )

        result = packages_service.update_generation_progress(
            db_session,
            conversation_id,
            GenerationProgressUpdate.model_validate(
                {"progress": 60, "currentStep": "Writing clues", "sections": {"hostGuide": True}}
            ),
        )

        assert result.status == "in_progress"
        assert result.progress == 60
        assert result.current_step == "Writing clues"
        assert result.sections == {"hostGuide": True, "clues": False}

    def test_completed_defaults(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        package_id = create_test_package(
            db_session, conversation_id, status=status_document("in_progress", 80)
        )

        result = packages_service.update_generation_progress(
            db_session, conversation_id, GenerationProgressUpdate(status="completed")
        )

        assert result.progress == 100
        assert result.current_step == STEP_COMPLETED
        db_session.expire_all()
        assert db_session.get(MysteryPackage, package_id).generation_completed_at is not None

    def test_completed_is_never_moved_backwards(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        create_test_package(
            db_session, conversation_id, status=status_document("completed", 100, STEP_COMPLETED)
        )
        published = []
        notifier.publish = published.append

        result = packages_service.update_generation_progress(
            db_session,
            conversation_id,
            GenerationProgressUpdate(status="in_progress", progress=30),
        )

        assert result.status == "completed"
        assert result.progress == 100
        assert published == []

    def test_error_only_kept_when_failed(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)
        create_test_package(
            db_session,
            conversation_id,
            status=status_document("failed", 0, "Failed", error="timeout", resumable=True),
        )

        result = packages_service.update_generation_progress(
            db_session,
            conversation_id,
            GenerationProgressUpdate(status="in_progress", progress=15),
        )

        assert result.error is None
        assert result.resumable is True

    def test_first_report_creates_package_row(self, db_session: Session, notifier):
        conversation_id = create_test_conversation(db_session)

        result = packages_service.update_generation_progress(
            db_session,
            conversation_id,
            GenerationProgressUpdate(status="in_progress", progress=5),
        )

        assert result.status == "in_progress"
        db_session.expire_all()
        package = db_session.scalars(
            select(MysteryPackage).where(MysteryPackage.conversation_id == conversation_id)
        ).one()
        assert package.generation_started_at is not None


class TestMarkPackageDelivered:
    def test_sets_flags(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        packages_service.mark_package_delivered(db_session, conversation_id)

        db_session.expire_all()
        conversation = db_session.get(Conversation, conversation_id)
        assert conversation.has_complete_package is True
        assert conversation.is_paid is True
        assert conversation.display_status == "purchased"

    def test_idempotent(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        packages_service.mark_package_delivered(db_session, conversation_id)
        db_session.expire_all()
        updated_at = db_session.get(Conversation, conversation_id).updated_at

        packages_service.mark_package_delivered(db_session, conversation_id)

        db_session.expire_all()
        assert db_session.get(Conversation, conversation_id).updated_at == updated_at


class TestReads:
    """Owner reads and role-scoped token reads."""

    def test_package_content_requires_package(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)

        with pytest.raises(NotFoundError) as exc_info:
            packages_service.get_package_content(db_session, conversation_id)

        assert exc_info.value.code == ApiErrorCode.E_PACKAGE_NOT_FOUND

    def test_character_from_another_package_not_found(self, db_session: Session):
        first = create_test_conversation(db_session)
        second = create_test_conversation(db_session)
        create_complete_package(db_session, first)
        other_package_id = create_complete_package(db_session, second)
        foreign_character = _characters(db_session, other_package_id)[0]

        with pytest.raises(NotFoundError) as exc_info:
            packages_service.get_character_guide(db_session, first, foreign_character.id)

        assert exc_info.value.code == ApiErrorCode.E_CHARACTER_NOT_FOUND

    def test_host_token_returns_host_view(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        token = db_session.get(MysteryPackage, package_id).host_access_token

        view = packages_service.get_host_package_by_token(db_session, token)

        assert view.title == "Murder at the Blue Parrot"
        assert view.host_guide_markdown.startswith("# Host Guide\n\n")
        assert "## Evidence Cards" in view.detective_kit_markdown

    def test_character_token_returns_only_that_character(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        vera, _ = _characters(db_session, package_id)

        view = packages_service.get_character_by_token(db_session, vera.access_token)

        assert view.mystery_title == "Murder at the Blue Parrot"
        assert view.character.name == "Vera Lark"
        assert view.guide_markdown.startswith("# Vera Lark - Character Guide")

    def test_unknown_tokens_rejected(self, db_session: Session):
        with pytest.raises(NotFoundError) as exc_info:
            packages_service.get_host_package_by_token(db_session, "nope")
        assert exc_info.value.code == ApiErrorCode.E_ACCESS_TOKEN_INVALID

        with pytest.raises(NotFoundError):
            packages_service.get_character_by_token(db_session, "nope")

    def test_tokens_are_distinct(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        package = db_session.get(MysteryPackage, package_id)
        tokens = {package.host_access_token} | {
            c.access_token for c in _characters(db_session, package_id)
        }
        assert len(tokens) == 3


class TestAssignCharacter:
    def test_assign(self, db_session: Session):
        conversation_id = create_test_conversation(db_session)
        package_id = create_complete_package(db_session, conversation_id)
        vera, _ = _characters(db_session, package_id)

        result = packages_service.assign_character(
            db_session,
            conversation_id,
            vera.id,
            CharacterAssignment(guest_name="June", guest_email="june@example.com"),
        )

        assert result.guest_name == "June"
        assert result.guest_email == "june@example.com"
