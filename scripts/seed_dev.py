#!/usr/bin/env python
"""Seed development database with a finished mystery.

Seeds one conversation with a completed package and two characters so the
host and character access pages can be exercised locally without running
the external generator.

Constraints:
- Refuses to run in staging or prod (MYSTERY_ENV check)
- Idempotent via ON CONFLICT DO NOTHING
- Never runs automatically (manual invocation only)

Usage:
    cd python && DATABASE_URL=... python ../scripts/seed_dev.py
"""

import json
import os
import sys

FIXTURE_CONVERSATION_ID = "0b6f7c1e-3c1a-4f0e-9a56-5d2f1c7e0001"
FIXTURE_PACKAGE_ID = "0b6f7c1e-3c1a-4f0e-9a56-5d2f1c7e0002"
FIXTURE_HOST_TOKEN = "dev-host-token"
FIXTURE_TITLE = "Murder at the Blue Parrot"
FIXTURE_CHARACTERS = (
    ("0b6f7c1e-3c1a-4f0e-9a56-5d2f1c7e0010", "Vera Lark", "Headline singer.", "dev-char-vera"),
    ("0b6f7c1e-3c1a-4f0e-9a56-5d2f1c7e0011", "Dutch Malone", "Club owner.", "dev-char-dutch"),
)


def main():
    # 1. Environment check (hard fail in staging/prod)
    mystery_env = os.getenv("MYSTERY_ENV", "local")
    if mystery_env not in ("local", "test"):
        print(f"ERROR: seed_dev.py refuses to run in MYSTERY_ENV={mystery_env}")
        sys.exit(1)

    # 2. Check DATABASE_URL
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL environment variable must be set")
        sys.exit(1)

    from sqlalchemy import create_engine, text

    from mystery.schemas.generation import GenerationStatus

    engine = create_engine(database_url)

    with engine.connect() as conn:
        # 3. Idempotent seeding
        result = conn.execute(
            text("""
                INSERT INTO conversations (
                    id, title, theme, player_count, mystery_style, script_type,
                    host_name, host_email, has_complete_package, is_paid, display_status
                )
                VALUES (
                    :id, :title, '1920s speakeasy', 6, 'detective', 'full',
                    'Dev Host', 'host@example.com', true, true, 'purchased'
                )
                ON CONFLICT (id) DO NOTHING
                RETURNING id
            """),
            {"id": FIXTURE_CONVERSATION_ID, "title": FIXTURE_TITLE},
        )
        conversation_created = result.fetchone() is not None

        result = conn.execute(
            text("""
                INSERT INTO mystery_packages (
                    id, conversation_id, title, game_overview, host_guide,
                    detective_script, evidence_cards, generation_status,
                    generation_started_at, generation_completed_at, host_access_token
                )
                VALUES (
                    :id, :conversation_id, :title,
                    'A jazz singer is found dead backstage.',
                    'Welcome your guests at the door.',
                    'Inspector, gather the suspects.',
                    CAST(:evidence_cards AS jsonb), CAST(:status AS jsonb),
                    now(), now(), :host_token
                )
                ON CONFLICT (id) DO NOTHING
                RETURNING id
            """),
            {
                "id": FIXTURE_PACKAGE_ID,
                "conversation_id": FIXTURE_CONVERSATION_ID,
                "title": FIXTURE_TITLE,
                "evidence_cards": json.dumps([{"title": "Torn ticket", "text": "Row F"}]),
                "status": json.dumps(GenerationStatus.completed().to_document()),
                "host_token": FIXTURE_HOST_TOKEN,
            },
        )
        package_created = result.fetchone() is not None

        characters_created = 0
        for position, (character_id, name, description, token) in enumerate(FIXTURE_CHARACTERS):
            result = conn.execute(
                text("""
                    INSERT INTO mystery_characters (
                        id, package_id, position, character_name, description, access_token
                    )
                    VALUES (:id, :package_id, :position, :name, :description, :token)
                    ON CONFLICT (id) DO NOTHING
                    RETURNING id
                """),
                {
                    "id": character_id,
                    "package_id": FIXTURE_PACKAGE_ID,
                    "position": position,
                    "name": name,
                    "description": description,
                    "token": token,
                },
            )
            if result.fetchone() is not None:
                characters_created += 1

        conn.commit()

    # 4. Report
    print(f"Conversation {FIXTURE_CONVERSATION_ID}: {'created' if conversation_created else 'exists'}")
    print(f"Package {FIXTURE_PACKAGE_ID}: {'created' if package_created else 'exists'}")
    print(f"Characters created: {characters_created}")
    print(f"Host view: /access/host/{FIXTURE_HOST_TOKEN}")


if __name__ == "__main__":
    main()
