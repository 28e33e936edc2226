"""Story generation: scripts, segmentation and characters.

Every LLM-backed function here has a deterministic fallback, so the wizard can
run end to end without a text model configured.
"""

from __future__ import annotations

import logging
import math
import re
import time
import uuid
from typing import Any

from pipeline.llm import LLMError, call_llm, call_llm_json
from prompts.story_system import (
    CHARACTER_SYSTEM_PROMPT,
    CHARACTERS_PROMPT_TEMPLATE,
    ENHANCE_CHARACTER_PROMPT_TEMPLATE,
    RELATIONSHIPS_PROMPT_TEMPLATE,
    SCRIPT_PROMPT_TEMPLATE,
    SCRIPT_SYSTEM_PROMPT,
    SEGMENT_CHARACTERS_PROMPT_TEMPLATE,
    SINGLE_CHARACTER_PROMPT_TEMPLATE,
)
from schemas.story import Character, ScriptSegment, ScriptTemplate, SegmentCharacter

logger = logging.getLogger(__name__)

THEMES = ["comedy", "drama", "action", "romance", "horror", "thriller", "fantasy", "scifi"]
VIDEO_STYLES = ["realistic", "anime", "comic", "cyberpunk", "fantasy", "noir"]

DEFAULT_TRAITS = ["intelligent", "determined", "charismatic"]
FALLBACK_TRAITS = ["intelligent", "determined", "charismatic", "resourceful", "authentic"]

_DIALOGUE_NAME = re.compile(r"^([A-Z][A-Za-z\s]+):")


def _now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Script templates
# ---------------------------------------------------------------------------

SCRIPT_TEMPLATES: dict[str, ScriptTemplate] = {
    "comedy": ScriptTemplate(
        id="comedy_1",
        title="The Worst Wedding Planner",
        description="Everything that can go wrong at a wedding does",
        content="""SCENE 1: A flooded wedding venue, early morning.
JENNY, a frazzled wedding planner, stands ankle-deep in water.
JENNY: This is fine. This is totally fine.
BRIDE: Jenny, why is the cake floating?
JENNY: It's a water feature. Very modern.
SCENE 2: A muddy park an hour later. Thunder rumbles.
JENNY: Welcome, everyone, to our rustic outdoor celebration!
GROOM: Is that hail?
JENNY: Complimentary ice. You're welcome.""",
    ),
    "drama": ScriptTemplate(
        id="drama_1",
        title="The Last Letter",
        description="A daughter finds the letter her father never sent",
        content="""SCENE 1: A dusty attic. Afternoon light through a small window.
EMMA kneels beside an old trunk and finds a sealed envelope with her name on it.
EMMA: Dad, what did you want to tell me?
SCENE 2: The kitchen. Her brother DANIEL pours two cups of coffee.
DANIEL: He wrote that the week before the accident.
EMMA: Why didn't he ever send it?
DANIEL: Maybe he was waiting for you to come home.
SCENE 3: The porch at sunset. Emma reads the letter aloud, voice breaking.
EMMA: I was always proud of you. I just never learned how to say it.""",
    ),
    "action": ScriptTemplate(
        id="action_1",
        title="The Heist",
        description="A crew has ninety seconds to empty a vault",
        content="""SCENE 1: A rooftop at midnight. City lights below.
MAYA checks her watch while REX loads a grappling line.
MAYA: Ninety seconds once the alarm is cut. Not one more.
REX: I've done it in sixty.
SCENE 2: Inside the vault. Red lights start to flash.
MAYA: They rerouted the alarm. Move!
REX: Grab the drive and go, I'll hold the door.
SCENE 3: The rooftop. A helicopter spotlight sweeps across them.
MAYA: Jump on three.
REX: What happened to one and two?""",
    ),
    "romance": ScriptTemplate(
        id="romance_1",
        title="The Coffee Shop Meet-Cute",
        description="Two strangers keep ordering the same drink",
        content="""SCENE 1: A busy coffee shop on a rainy morning.
LILY and SAM reach for the same cup on the counter.
LILY: I think that one's mine. Oat latte, extra hot?
SAM: That's my order too. Every single day.
SCENE 2: A small table by the window. Rain streaks the glass.
SAM: So we've been stealing each other's coffee for a month.
LILY: Maybe the universe is trying to tell us something.
SCENE 3: The doorway. The rain has stopped.
SAM: Same time tomorrow?
LILY: Only if you order something different.""",
    ),
    "horror": ScriptTemplate(
        id="horror_1",
        title="The Night Shift",
        description="A security guard hears footsteps in an empty museum",
        content="""SCENE 1: A dark museum hallway. A flashlight beam cuts through the gloom.
MARCUS: Hello? The museum is closed.
Footsteps echo from the Egyptian wing.
SCENE 2: The security office. Monitors flicker.
RADIO VOICE: Marcus, nobody else is on shift tonight.
MARCUS: Then who just walked past camera four?
SCENE 3: The Egyptian wing. The sarcophagus lid is open.
MARCUS: Okay. Okay. I quit.""",
    ),
    "thriller": ScriptTemplate(
        id="thriller_1",
        title="The Phone Call",
        description="A wrong number turns into a warning",
        content="""SCENE 1: A quiet apartment late at night. The phone rings.
CLAIRE: Hello?
CALLER: Don't open the door for anyone tonight.
CLAIRE: Who is this?
SCENE 2: The hallway. A knock at the door.
NEIGHBOR: Claire, it's me. Power's out on our floor.
CLAIRE: Tom, did you call me a minute ago?
NEIGHBOR: Call you? My phone died an hour ago.
SCENE 3: Claire backs away from the door as the phone rings again.""",
    ),
    "fantasy": ScriptTemplate(
        id="fantasy_1",
        title="The Last Dragon Keeper",
        description="An apprentice must wake the last sleeping dragon",
        content="""SCENE 1: A cavern glittering with crystals. A massive dragon sleeps.
ARIN holds an ancient lantern with shaking hands.
ARIN: Master Elowen said you would wake for the last keeper.
SCENE 2: The cavern trembles. Golden eyes open.
DRAGON: Many have claimed that title, little one.
ARIN: The kingdom is burning. I'm all that's left.
SCENE 3: The dragon rises and lowers its wing.
DRAGON: Then climb on, keeper. We fly at dawn.""",
    ),
    "scifi": ScriptTemplate(
        id="scifi_1",
        title="The Memory Thief",
        description="A detective discovers her own memories were stolen",
        content="""SCENE 1: A neon-lit street in 2087. Rain hisses on hover-cars.
DETECTIVE KANE studies a memory chip under a scanner.
KANE: This chip holds someone's entire childhood.
SCENE 2: A cramped lab. The technician VEX runs a trace.
VEX: Kane, the memories on this chip are yours.
KANE: That's impossible. I remember my childhood.
VEX: You remember what they gave you back.
SCENE 3: Kane stares at her reflection in a rain-streaked window.""",
    ),
}


def get_templates_for_theme(theme: str) -> list[ScriptTemplate]:
    template = SCRIPT_TEMPLATES.get(str(theme or "").lower(), SCRIPT_TEMPLATES["drama"])
    return [template]


# ---------------------------------------------------------------------------
# Script generation
# ---------------------------------------------------------------------------

def generate_enhanced_script(theme: str, prompt: str, video_style: str, content_theme: str) -> str:
    logger.info("Generating AI script for %s theme in %s style", content_theme, video_style)
    user_prompt = SCRIPT_PROMPT_TEMPLATE.format(
        theme=theme,
        prompt=prompt,
        video_style=video_style,
        content_theme=content_theme,
    )
    script = call_llm(SCRIPT_SYSTEM_PROMPT, user_prompt, temperature=0.9)
    if not script or not script.strip():
        raise LLMError("Empty response from AI")
    logger.info("Generated AI script (%d characters)", len(script))
    return script.strip()


def generate_script_with_fallback(theme: str, prompt: str, video_style: str, content_theme: str) -> str:
    try:
        return generate_enhanced_script(theme, prompt, video_style, content_theme)
    except LLMError as exc:
        template = get_templates_for_theme(content_theme or theme)[0]
        logger.warning("Script generation failed (%s); using template '%s'", exc, template.title)
        return template.content


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

def generate_sample_content_for_segment(title: str, index: int) -> str:
    low = str(title or "").lower()
    if "introduction" in low or "intro" in low:
        return (
            "This introduction sets up the main topic and gives a brief overview of what will be covered "
            "in this video. It engages the audience with an interesting hook and establishes the tone for "
            "the rest of the content."
        )
    if "conclusion" in low:
        return (
            "This conclusion summarizes the key points discussed in the video and provides a call to action "
            "for the audience. It leaves viewers with final thoughts and encourages engagement."
        )
    if "main point" in low or "key point" in low:
        ordinal = {0: "first", 1: "second", 2: "third"}.get(index, "next")
        return (
            f"This segment explores the {ordinal} key point in detail, providing examples and evidence to "
            "support the argument. It builds upon previous segments and leads naturally to the next topic."
        )
    if "example" in low or "case study" in low:
        return (
            "This segment presents a detailed example or case study that illustrates the main concepts. "
            "It provides concrete evidence and helps the audience understand the practical applications "
            "of the ideas being discussed."
        )
    if "background" in low or "context" in low:
        return (
            "This segment provides necessary background information and context for the topic. It helps "
            "viewers understand why this subject matters and how it fits into the broader picture."
        )
    return (
        f"This segment covers {title} in detail, explaining the core concepts and their significance. "
        "It presents information in a clear, engaging manner that helps viewers understand and retain "
        "the material."
    )


def segment_script(script: str, number_of_segments: int) -> list[ScriptSegment]:
    """Distribute non-empty script lines evenly over `number_of_segments` parts.

    Parts that end up with fewer than three lines get sample content instead.
    """
    if not script or not script.strip():
        raise ValueError("No script available. Create a script first.")
    if number_of_segments < 1:
        raise ValueError("number_of_segments must be at least 1")

    lines = [line for line in script.split("\n") if line.strip()]
    per_segment = max(1, math.ceil(len(lines) / number_of_segments))
    stamp = _now_ms()

    segments: list[ScriptSegment] = []
    for i in range(number_of_segments):
        start = i * per_segment
        end = min(len(lines), (i + 1) * per_segment)
        content = "\n".join(lines[start:end]) if start < len(lines) else ""
        title = f"Part {i + 1}"
        if not content.strip() or len(content.split("\n")) < 3:
            content = generate_sample_content_for_segment(title, i)
        segments.append(
            ScriptSegment(
                id=f"segment-{i}-{stamp}-{uuid.uuid4().hex[:7]}",
                title=title,
                content=content,
            )
        )
    return segments


# ---------------------------------------------------------------------------
# Characters
# ---------------------------------------------------------------------------

def extract_characters_manually(script: str) -> list[str]:
    """Speaker names from `NAME: line` dialogue, in order of first appearance."""
    names: list[str] = []
    for line in str(script or "").split("\n"):
        match = _DIALOGUE_NAME.match(line)
        if match:
            name = match.group(1).strip()
            if name not in names:
                names.append(name)
    return names


def generate_fallback_characters(script: str, number_of_characters: int) -> list[Character]:
    names = extract_characters_manually(script)[:number_of_characters]
    while len(names) < number_of_characters:
        names.append(f"Character {len(names) + 1}")
    stamp = _now_ms()
    return [
        Character(
            id=f"char-fallback-{stamp}-{index}",
            name=name,
            description="A character in the story with a unique personality and important role.",
            appearance="A distinctive person with memorable features and appropriate styling.",
            traits=list(FALLBACK_TRAITS),
            role="protagonist" if index == 0 else "supporting",
            age="adult",
            gender="neutral",
            background="An interesting individual with a compelling personal story and clear motivations.",
        )
        for index, name in enumerate(names)
    ]


def _as_list(payload: Any, key: str) -> list[Any]:
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    if isinstance(payload, list):
        return payload
    raise ValueError(f"Expected a JSON array of {key}")


def _character_from_payload(data: dict[str, Any], character_id: str, fallback_name: str) -> Character:
    traits = data.get("traits")
    return Character(
        id=character_id,
        name=str(data.get("name") or fallback_name),
        description=str(data.get("description") or ""),
        appearance=str(data.get("appearance") or "A distinctive character with unique features"),
        traits=[str(t) for t in traits] if isinstance(traits, list) and traits else list(DEFAULT_TRAITS),
        role=str(data.get("role") or "supporting"),
        age=str(data.get("age") or "adult"),
        gender=str(data.get("gender") or "neutral"),
        background=str(data.get("background") or "An interesting character with a unique story"),
    )


def generate_characters_from_script(
    script: str,
    video_style: str,
    content_theme: str,
    number_of_characters: int = 3,
) -> list[Character]:
    logger.info("Generating %d AI characters from script", number_of_characters)
    user_prompt = CHARACTERS_PROMPT_TEMPLATE.format(
        count=number_of_characters,
        script=script,
        video_style=video_style,
        content_theme=content_theme,
    )
    try:
        rows = _as_list(call_llm_json(CHARACTER_SYSTEM_PROMPT, user_prompt), "characters")
        stamp = _now_ms()
        characters = [
            _character_from_payload(row, f"char-{stamp}-{index}", f"Character {index + 1}")
            for index, row in enumerate(rows)
            if isinstance(row, dict)
        ]
        if not characters:
            raise ValueError("No characters in response")
    except (LLMError, ValueError) as exc:
        logger.warning("Character generation failed (%s); using fallback characters", exc)
        return generate_fallback_characters(script, number_of_characters)
    logger.info("Generated %d AI characters", len(characters))
    return characters


def generate_single_character(description: str, video_style: str, content_theme: str) -> Character:
    """One character from a free-text description. Raises LLMError on failure."""
    user_prompt = SINGLE_CHARACTER_PROMPT_TEMPLATE.format(
        description=description,
        video_style=video_style,
        content_theme=content_theme,
    )
    data = call_llm_json(CHARACTER_SYSTEM_PROMPT, user_prompt)
    if not isinstance(data, dict):
        raise LLMError("Failed to parse character data")
    character = _character_from_payload(data, f"char-{_now_ms()}", "Unnamed Character")
    logger.info("Generated AI character: %s", character.name)
    return character


def enhance_characters(characters: list[Character], video_style: str, content_theme: str) -> list[Character]:
    """Richer descriptions per character; a character that fails keeps its original sheet."""
    enhanced: list[Character] = []
    for character in characters:
        user_prompt = ENHANCE_CHARACTER_PROMPT_TEMPLATE.format(
            content_theme=content_theme,
            video_style=video_style,
            name=character.name,
            description=character.description,
            traits=", ".join(character.traits),
        )
        try:
            data = call_llm_json(CHARACTER_SYSTEM_PROMPT, user_prompt)
            if not isinstance(data, dict):
                raise ValueError("Expected a JSON object")
        except (LLMError, ValueError) as exc:
            logger.warning("Enhancement failed for %s: %s", character.name, exc)
            enhanced.append(character)
            continue
        traits = data.get("traits")
        enhanced.append(
            character.model_copy(
                update={
                    "description": str(data.get("description") or character.description),
                    "appearance": str(data.get("appearance") or character.appearance),
                    "traits": [str(t) for t in traits] if isinstance(traits, list) and traits else character.traits,
                    "background": str(data.get("background") or character.background),
                }
            )
        )
        logger.info("Enhanced character: %s", character.name)
    return enhanced


def generate_character_relationships(characters: list[Character], content_theme: str) -> dict[str, list[str]]:
    character_list = "\n".join(f"{c.name}: {c.description}" for c in characters)
    user_prompt = RELATIONSHIPS_PROMPT_TEMPLATE.format(content_theme=content_theme, character_list=character_list)
    try:
        data = call_llm_json(CHARACTER_SYSTEM_PROMPT, user_prompt)
    except LLMError as exc:
        logger.warning("Relationship generation failed: %s", exc)
        return {}
    if not isinstance(data, dict):
        return {}
    return {
        str(name): [str(item) for item in value] if isinstance(value, list) else [str(value)]
        for name, value in data.items()
    }


def validate_character(character: Character) -> bool:
    return bool(character.id and character.name and character.description and character.traits)


def character_summary(character: Character) -> str:
    return f"{character.name} - {character.role} - {', '.join(character.traits[:3])}"


# ---------------------------------------------------------------------------
# Segment characters
# ---------------------------------------------------------------------------

def _segment_character_id() -> str:
    return f"{_now_ms()}{uuid.uuid4().hex[:9]}"


def generate_fallback_segment_characters(segment_title: str, theme: str) -> list[SegmentCharacter]:
    low = str(theme or "").lower()
    first, second = "Alex", "Jordan"
    if "adventure" in low:
        first, second = "Explorer Alex", "Guide Jordan"
    elif "scifi" in low or "sci-fi" in low:
        first, second = "Captain Nova", "Engineer Zeta"
    elif "romance" in low:
        first, second = "Taylor", "Riley"
    elif "mystery" in low or "detective" in low:
        first, second = "Detective Morgan", "Witness Jamie"

    return [
        SegmentCharacter(
            id=_segment_character_id(),
            name=first,
            description=f'A main character in the "{segment_title}" segment with a unique perspective on the {theme} theme.',
            traits=["Confident", "Creative", "Resourceful"],
            role="Protagonist",
        ),
        SegmentCharacter(
            id=_segment_character_id(),
            name=second,
            description=f'A supporting character in the "{segment_title}" segment who adds depth to the {theme} theme.',
            traits=["Supportive", "Curious", "Insightful"],
            role="Supporting Character",
        ),
    ]


def extract_characters_from_segment(content: str, title: str, theme: str) -> list[SegmentCharacter]:
    logger.info("Extracting characters from segment: %s", title)
    user_prompt = SEGMENT_CHARACTERS_PROMPT_TEMPLATE.format(title=title, content=content, theme=theme)
    try:
        rows = _as_list(call_llm_json(CHARACTER_SYSTEM_PROMPT, user_prompt), "characters")
    except (LLMError, ValueError) as exc:
        logger.info("Using fallback characters for segment '%s': %s", title, exc)
        return generate_fallback_segment_characters(title, theme)

    characters = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        traits = row.get("traits")
        characters.append(
            SegmentCharacter(
                id=_segment_character_id(),
                name=str(row.get("name") or "Unnamed Character"),
                description=str(row.get("description") or f"A character suitable for a {theme} theme video"),
                traits=[str(t) for t in traits[:5]] if isinstance(traits, list) else ["Adaptable", "Creative"],
                role=str(row.get("role") or "Supporting Character"),
            )
        )
    return characters or generate_fallback_segment_characters(title, theme)
