"""Markdown document assembly for generated packages.

Package text is stored pre-formatted by the generator; documents are
assembled by straight concatenation in a fixed field order. Each present
field is followed by a blank line and absent fields contribute nothing.
"""

import json

from mystery.db.models import MysteryCharacter, MysteryPackage

# Order in which a character's fields appear in their guide
CHARACTER_GUIDE_FIELDS: tuple[str, ...] = (
    "description",
    "background",
    "rumors",
    "secret",
    "introduction",
    "round2_questions",
    "round2_innocent",
    "round2_guilty",
    "round2_accomplice",
    "round3_questions",
    "round3_innocent",
    "round3_guilty",
    "round3_accomplice",
    "round4_questions",
    "round4_innocent",
    "round4_guilty",
    "round4_accomplice",
    "final_innocent",
    "final_guilty",
    "final_accomplice",
)

HOST_GUIDE_FIELDS: tuple[str, ...] = (
    "game_overview",
    "materials",
    "preparation_instructions",
    "timeline",
    "host_guide",
    "hosting_tips",
)

EMPTY_CARD_MARKERS = frozenset({"", "[]", "null"})


def _unescape_newlines(text: str) -> str:
    # Generator output sometimes carries literal "\n" sequences
    return text.replace("\\n", "\n")


def _concat(header: str, parts: list[str | None]) -> str:
    content = header
    for part in parts:
        if part:
            content += f"{part}\n\n"
    return content


def build_character_guide(character: MysteryCharacter) -> str:
    """Assemble the full guide handed to the guest playing a character."""
    content = _concat(
        f"# {character.character_name} - Character Guide\n\n",
        [getattr(character, name) for name in CHARACTER_GUIDE_FIELDS],
    )
    return _unescape_newlines(content)


def build_host_guide(package: MysteryPackage) -> str:
    """Assemble the host guide: overview through hosting tips."""
    return _concat("# Host Guide\n\n", [getattr(package, name) for name in HOST_GUIDE_FIELDS])


def format_evidence_cards(cards) -> str | None:
    """Render evidence cards as text; None when there are none."""
    if cards is None:
        return None
    text = cards if isinstance(cards, str) else json.dumps(cards, indent=2, ensure_ascii=False)
    if text.strip() in EMPTY_CARD_MARKERS:
        return None
    return text


def build_detective_kit(package: MysteryPackage) -> str:
    """Assemble the detective kit: detective script, then the evidence cards."""
    content = ""
    if package.detective_script:
        content += f"{package.detective_script}\n\n"

    cards = format_evidence_cards(package.evidence_cards)
    if cards is not None:
        content += f"## Evidence Cards\n\n{cards}\n\n"

    return content
