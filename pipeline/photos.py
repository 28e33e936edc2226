"""Character portraits: prompt drafting, Stable Diffusion generation, curated fallbacks."""

from __future__ import annotations

import logging
import random
import re
import time
from datetime import datetime
from pathlib import Path

import httpx

import config
from pipeline.errors import ProviderError
from pipeline.llm import LLMError, call_llm
from pipeline.provider_registry import get_provider
from prompts.photo_system import (
    ENHANCE_IMAGE_PROMPT_TEMPLATE,
    IMAGE_PROMPT_SYSTEM_PROMPT,
    IMAGE_PROMPT_TEMPLATE,
)
from schemas.story import AIImageRequest, AIImageResponse, Character, PhotoOption

logger = logging.getLogger(__name__)

HUGGINGFACE_SERVICE = "Hugging Face Stable Diffusion"
FALLBACK_SERVICE = "Fallback High-Quality Images"

HUMAN_PHOTO_SEEDS: dict[str, list[str]] = {
    "male": [
        "professional-man-1", "business-man-2", "casual-man-3", "young-man-4", "mature-man-5",
        "athlete-man-6", "artist-man-7", "scientist-man-8", "teacher-man-9", "doctor-man-10",
    ],
    "female": [
        "professional-woman-1", "business-woman-2", "casual-woman-3", "young-woman-4", "mature-woman-5",
        "athlete-woman-6", "artist-woman-7", "scientist-woman-8", "teacher-woman-9", "doctor-woman-10",
    ],
    "neutral": [
        "person-1", "individual-2", "character-3", "human-4", "portrait-5",
        "face-6", "profile-7", "headshot-8", "photo-9", "image-10",
    ],
}

STYLE_GUIDELINES = {
    "realistic": "photorealistic human portrait, natural lighting and skin tones, contemporary clothing",
    "anime": "anime character design, large expressive eyes, vibrant colors and clean lines",
    "comic": "comic book art, bold outlines and dramatic shading, saturated colors",
    "cyberpunk": "futuristic cyberpunk, neon lighting, high-tech clothing, metallic palette",
    "fantasy": "fantasy art, mystical elements, period fantasy clothing, ethereal lighting",
    "noir": "film noir, desaturated tones, dramatic shadows, 1940s styling",
}

STYLE_PROMPTS = {
    "realistic": "photorealistic style, natural lighting, contemporary setting",
    "anime": "anime art style, large expressive eyes, stylized features",
    "comic": "comic book art style, bold colors, dynamic composition",
    "cyberpunk": "cyberpunk aesthetic, neon lighting, futuristic elements",
    "fantasy": "fantasy art style, magical atmosphere, ethereal lighting",
    "noir": "film noir style, dramatic shadows, monochromatic tones",
}

THEME_PROMPTS = {
    "comedy": "cheerful expression, bright and colorful setting",
    "drama": "emotional expression, dramatic lighting",
    "action": "confident pose, dynamic background",
    "romance": "soft expression, warm lighting, romantic atmosphere",
    "horror": "mysterious expression, dark atmospheric lighting",
    "adventure": "adventurous look, outdoor or exotic setting",
    "mystery": "intriguing expression, shadowy atmosphere",
    "scifi": "futuristic setting, technological elements",
}

_FEMALE_WORDS = ["woman", "female", "she", "her", "girl", "lady", "ms", "mrs", "miss"]
_MALE_WORDS = ["man", "male", "he", "his", "him", "boy", "guy", "mr", "sir"]

_UNSPLASH = "https://images.unsplash.com/photo-{}?w=512&h=512&fit=crop&crop=face&auto=format&q=80"
CURATED_PORTRAITS: dict[str, list[str]] = {
    "business_female": [_UNSPLASH.format(i) for i in (
        "1494790108755-2616b612b786", "1438761681033-6461ffad8d80", "1534528741775-53994a69daeb")],
    "business_male": [_UNSPLASH.format(i) for i in (
        "1507003211169-0a1dd7228f2d", "1472099645785-5658abf4ff4e", "1500648767791-00dcc994a43e")],
    "young_female": [_UNSPLASH.format(i) for i in ("1517841905240-472988babdf9", "1544005313-94ddf0286df2")],
    "young_male": [_UNSPLASH.format(i) for i in ("1519085360753-af0119f7cbe7", "1506794778202-cad84cf45f1d")],
    "general_female": [_UNSPLASH.format(i) for i in (
        "1494790108755-2616b612b786", "1438761681033-6461ffad8d80",
        "1534528741775-53994a69daeb", "1517841905240-472988babdf9")],
    "general_male": [_UNSPLASH.format(i) for i in (
        "1507003211169-0a1dd7228f2d", "1472099645785-5658abf4ff4e",
        "1500648767791-00dcc994a43e", "1519085360753-af0119f7cbe7")],
}

STYLE_FILTERS = {
    "noir": "&sat=-100",
    "black and white": "&sat=-100",
    "vintage": "&sepia=50",
    "cyberpunk": "&sat=-30&con=30",
    "fantasy": "&sat=20&con=10",
}


def _count_words(text: str, words: list[str]) -> int:
    return sum(1 for word in words if re.search(rf"\b{re.escape(word)}\b", text))


# ---------------------------------------------------------------------------
# Prompt building
# ---------------------------------------------------------------------------

def detect_gender(character: Character) -> str:
    """'woman', 'man' or 'person' from the explicit field, then whole-word cues."""
    explicit = str(character.gender or "").lower()
    if explicit == "female":
        return "woman"
    if explicit == "male":
        return "man"
    text = f"{character.description} {character.name} {character.appearance}".lower()
    female = _count_words(text, _FEMALE_WORDS)
    male = _count_words(text, _MALE_WORDS)
    if female > male:
        return "woman"
    if male > female:
        return "man"
    return "person"


def detect_age(character: Character) -> str:
    text = f"{character.description} {' '.join(character.traits)}".lower()
    if any(word in text for word in ("young", "teen", "student")):
        return "young"
    if any(word in text for word in ("old", "elderly", "senior")):
        return "elderly"
    if any(word in text for word in ("middle", "mature")):
        return "middle-aged"
    return "adult"


def get_style_guidelines(video_style: str) -> str:
    return STYLE_GUIDELINES.get(video_style, "high-quality portrait photography, professional lighting")


def get_advanced_image_prompt(character: Character, video_style: str, content_theme: str) -> str:
    prompt = f"Professional portrait photograph of a {detect_age(character)} {detect_gender(character)}"
    if character.description:
        prompt += f", {character.description.lower()}"
    if character.traits:
        prompt += f", with a {', '.join(character.traits[:3]).lower()} appearance"
    prompt += f", {STYLE_PROMPTS.get(video_style, 'professional photography style')}"
    prompt += f", {THEME_PROMPTS.get(content_theme, 'appropriate thematic styling')}"
    prompt += ", high resolution, professional lighting, sharp focus, detailed facial features"
    return prompt


def generate_image_prompt(character: Character, video_style: str, content_theme: str) -> str:
    user_prompt = IMAGE_PROMPT_TEMPLATE.format(
        name=character.name,
        description=character.description,
        appearance=character.appearance,
        traits=", ".join(character.traits),
        age=character.age,
        gender=character.gender,
        style=video_style,
        style_guidelines=get_style_guidelines(video_style),
        theme=content_theme,
    )
    try:
        text = call_llm(IMAGE_PROMPT_SYSTEM_PROMPT, user_prompt, max_tokens=300).strip()
    except LLMError as exc:
        logger.info("Using fallback image prompt for %s: %s", character.name, exc)
        return get_advanced_image_prompt(character, video_style, content_theme)
    return text or get_advanced_image_prompt(character, video_style, content_theme)


def enhance_image_prompt(prompt: str, style: str) -> str:
    try:
        text = call_llm(
            IMAGE_PROMPT_SYSTEM_PROMPT,
            ENHANCE_IMAGE_PROMPT_TEMPLATE.format(prompt=prompt, style=style),
            max_tokens=300,
        )
    except LLMError:
        text = ""
    text = re.sub(r"^Enhanced prompt:\s*", "", text.strip(), flags=re.IGNORECASE).strip()
    return text or (
        f"Professional portrait of {prompt}, high quality, realistic, detailed facial features, professional lighting"
    )


# ---------------------------------------------------------------------------
# Images
# ---------------------------------------------------------------------------

def get_fallback_image(prompt: str, style: str, rng: random.Random | None = None) -> str:
    """Curated stock portrait matching the prompt's gender/age/business cues."""
    text = str(prompt or "").lower()
    is_woman = _count_words(text, ["woman", "female", "she", "girl"]) > 0
    is_man = _count_words(text, ["man", "male", "he", "boy"]) > 0
    is_young = "young" in text or "teen" in text
    is_business = any(word in text for word in ("business", "professional", "executive"))

    if is_business:
        collection = CURATED_PORTRAITS["business_female" if is_woman else "business_male"]
    elif is_young:
        collection = CURATED_PORTRAITS["young_female" if is_woman else "young_male"]
    elif is_woman:
        collection = CURATED_PORTRAITS["general_female"]
    elif is_man:
        collection = CURATED_PORTRAITS["general_male"]
    else:
        collection = CURATED_PORTRAITS["general_female"] + CURATED_PORTRAITS["general_male"]

    chosen = (rng or random).choice(collection)
    return chosen + STYLE_FILTERS.get(str(style or "").lower(), "")


def _generate_with_huggingface(
    prompt: str,
    request: AIImageRequest,
    client: httpx.Client,
    output_dir: Path | None,
) -> str:
    spec = get_provider("huggingface")
    response = client.post(
        spec.base_url,
        headers={**spec.auth_headers(), "Accept": "image/png"},
        json={
            "inputs": prompt,
            "parameters": {
                "num_inference_steps": 50,
                "guidance_scale": 7.5,
                "width": request.width,
                "height": request.height,
            },
        },
    )
    if not response.is_success:
        raise ProviderError(f"HF API error: {response.status_code}", provider=spec.name, status_code=response.status_code)
    if not response.headers.get("content-type", "").startswith("image/"):
        raise ProviderError("HF API returned no image data", provider=spec.name)

    images_dir = (output_dir or config.OUTPUT_DIR) / "images"
    images_dir.mkdir(parents=True, exist_ok=True)
    path = images_dir / f"ai_image_{int(time.time() * 1000)}.png"
    path.write_bytes(response.content)
    return str(path)


def generate_ai_image(
    request: AIImageRequest,
    *,
    client: httpx.Client | None = None,
    output_dir: Path | None = None,
    rng: random.Random | None = None,
) -> AIImageResponse:
    """Stable Diffusion when a Hugging Face token is configured, curated portrait otherwise."""
    dimensions = f"{request.width}x{request.height}"
    spec = get_provider("huggingface")
    if spec.has_credentials and not config.FORCE_MOCK_GENERATION:
        enhanced = enhance_image_prompt(request.prompt, request.style)
        http = client or httpx.Client(timeout=config.HTTP_TIMEOUT_SECONDS)
        try:
            url = _generate_with_huggingface(enhanced, request, http, output_dir)
            return AIImageResponse(
                url=url,
                prompt=enhanced,
                style=request.style,
                service=HUGGINGFACE_SERVICE,
                generated_at=datetime.now().isoformat(),
                dimensions=dimensions,
                quality=request.quality,
            )
        except (ProviderError, httpx.HTTPError, OSError) as exc:
            logger.warning("Hugging Face image generation failed, using curated image: %s", exc)
        finally:
            if client is None:
                http.close()

    return AIImageResponse(
        url=get_fallback_image(request.prompt, request.style, rng),
        prompt=request.prompt,
        style=request.style,
        service=FALLBACK_SERVICE,
        generated_at=datetime.now().isoformat(),
        dimensions=dimensions,
        quality=request.quality,
    )


def generate_fallback_photo_url(character: Character, index: int) -> str:
    gender = {"woman": "female", "man": "male"}.get(detect_gender(character), "neutral")
    seeds = HUMAN_PHOTO_SEEDS[gender]
    seed = seeds[index % len(seeds)]
    services = [
        f"https://images.unsplash.com/photo-1507003211169-0a1dd7228f2d?w=400&h=600&fit=crop&crop=face&auto=format&q=80&seed={seed}",
        f"https://images.unsplash.com/photo-1494790108755-2616b612b786?w=400&h=600&fit=crop&crop=face&auto=format&q=80&seed={seed}",
        f"https://images.unsplash.com/photo-1472099645785-5658abf4ff4e?w=400&h=600&fit=crop&crop=face&auto=format&q=80&seed={seed}",
        f"https://picsum.photos/seed/portrait-{seed}-{character.id}-{index}/400/600",
    ]
    return services[index % len(services)]


def get_placeholder_image_for_character(name: str) -> str:
    seed = re.sub(r"[^a-zA-Z0-9]", "", str(name or ""))
    return f"https://picsum.photos/seed/{seed}/400/600"


def generate_character_photos(
    character: Character,
    video_style: str,
    content_theme: str,
    number_of_options: int = 3,
    *,
    client: httpx.Client | None = None,
    output_dir: Path | None = None,
) -> list[PhotoOption]:
    """Photo options for one character; the first option starts selected."""
    logger.info("Generating photos for %s in %s style", character.name, video_style)
    prompt = generate_image_prompt(character, video_style, content_theme)
    options: list[PhotoOption] = []
    for index in range(number_of_options):
        try:
            url = generate_ai_image(
                AIImageRequest(prompt=prompt, style=video_style, width=400, height=600),
                client=client,
                output_dir=output_dir,
            ).url
        except Exception as exc:
            logger.warning("Photo %d for %s failed, using fallback: %s", index + 1, character.name, exc)
            url = generate_fallback_photo_url(character, index)
        options.append(
            PhotoOption(
                id=f"{character.id}-photo-{index}",
                url=url,
                selected=index == 0,
                style=video_style,
                prompt=prompt,
            )
        )
    return options


def generate_all_character_photos(
    characters: list[Character],
    video_style: str,
    content_theme: str,
    options_per_character: int = 3,
    *,
    delay_seconds: float | None = None,
    client: httpx.Client | None = None,
    output_dir: Path | None = None,
) -> dict[str, list[PhotoOption]]:
    delay = config.SEQUENTIAL_REQUEST_DELAY_SECONDS if delay_seconds is None else delay_seconds
    result: dict[str, list[PhotoOption]] = {}
    for position, character in enumerate(characters):
        result[character.id] = generate_character_photos(
            character,
            video_style,
            content_theme,
            options_per_character,
            client=client,
            output_dir=output_dir,
        )
        if delay > 0 and position < len(characters) - 1:
            time.sleep(delay)
    return result
