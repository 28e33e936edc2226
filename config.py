"""Animato configuration: provider credentials, base URLs, polling, paths."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------
ROOT_DIR = Path(__file__).parent
OUTPUT_DIR = ROOT_DIR / os.getenv("OUTPUT_DIR", "outputs")

# ---------------------------------------------------------------------------
# Text / speech / image provider keys
# ---------------------------------------------------------------------------
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY", os.getenv("GEMINI_API_KEY", ""))
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY", "")

# ---------------------------------------------------------------------------
# Cloud composition providers (timeline renderers)
# ---------------------------------------------------------------------------
SHOTSTACK_API_KEY = os.getenv("SHOTSTACK_API_KEY", "")
SHOTSTACK_BASE_URL = os.getenv("SHOTSTACK_BASE_URL", "https://api.shotstack.io/stage")
BANNERBEAR_API_KEY = os.getenv("BANNERBEAR_API_KEY", "")
BANNERBEAR_BASE_URL = os.getenv("BANNERBEAR_BASE_URL", "https://api.bannerbear.com/v2")
# Bannerbear renders from a template created in its dashboard.
BANNERBEAR_TEMPLATE_ID = os.getenv("BANNERBEAR_TEMPLATE_ID", "")
CREATOMATE_API_KEY = os.getenv("CREATOMATE_API_KEY", "")
CREATOMATE_BASE_URL = os.getenv("CREATOMATE_BASE_URL", "https://api.creatomate.com/v1")

# ---------------------------------------------------------------------------
# Generative video providers
# ---------------------------------------------------------------------------
LUMA_API_KEY = os.getenv("LUMA_API_KEY", "")
LUMA_BASE_URL = os.getenv("LUMA_BASE_URL", "https://api.lumalabs.ai/dream-machine/v1")
RUNWAY_API_KEY = os.getenv("RUNWAY_API_KEY", "")
RUNWAY_BASE_URL = os.getenv("RUNWAY_BASE_URL", "https://api.dev.runwayml.com/v1")
RUNWAY_MODEL = os.getenv("RUNWAY_MODEL", "gen3a_turbo")
KLING_API_KEY = os.getenv("KLING_API_KEY", "")
KLING_BASE_URL = os.getenv("KLING_BASE_URL", "https://api.klingai.com/v1")
AIML_API_KEY = os.getenv("AIML_API_KEY", "")
AIML_BASE_URL = os.getenv("AIML_BASE_URL", "https://api.aimlapi.com")

HUGGINGFACE_MODEL_URL = os.getenv(
    "HUGGINGFACE_MODEL_URL",
    "https://api-inference.huggingface.co/models/runwayml/stable-diffusion-v1-5",
)

# Values that ship in example .env files and must not count as credentials.
PLACEHOLDER_API_KEYS = frozenset({"your-api-key-here", "undefined", "null", "hf_your_free_api_key"})

# ---------------------------------------------------------------------------
# Model names (centralized so they're easy to update)
# ---------------------------------------------------------------------------
GOOGLE_TEXT_MODEL = os.getenv("GOOGLE_TEXT_MODEL", "gemini-2.5-flash")
OPENAI_TEXT_MODEL = os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini")
OPENAI_TTS_MODEL = os.getenv("OPENAI_TTS_MODEL", "gpt-4o-mini-tts")

DEFAULT_TEXT_PROVIDER = os.getenv("DEFAULT_TEXT_PROVIDER", "google")

# ---------------------------------------------------------------------------
# Polling / HTTP
#
# Composition renders: 60 checks x 10s (about ten minutes), 5s back-off after a
# failed status check. Generative video: 60 checks x 5s.
# ---------------------------------------------------------------------------
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "60"))
RENDER_POLL_INTERVAL_SECONDS = float(os.getenv("RENDER_POLL_INTERVAL_SECONDS", "10"))
RENDER_POLL_ERROR_INTERVAL_SECONDS = float(os.getenv("RENDER_POLL_ERROR_INTERVAL_SECONDS", "5"))
RENDER_POLL_MAX_ATTEMPTS = int(os.getenv("RENDER_POLL_MAX_ATTEMPTS", "60"))
GENERATION_POLL_INTERVAL_SECONDS = float(os.getenv("GENERATION_POLL_INTERVAL_SECONDS", "5"))
GENERATION_POLL_MAX_ATTEMPTS = int(os.getenv("GENERATION_POLL_MAX_ATTEMPTS", "60"))

# Pause between sequential per-item provider calls (speech segments, photos).
SEQUENTIAL_REQUEST_DELAY_SECONDS = float(os.getenv("SEQUENTIAL_REQUEST_DELAY_SECONDS", "0.5"))

# Skip every network provider and use the deterministic stand-ins.
FORCE_MOCK_GENERATION = os.getenv("FORCE_MOCK_GENERATION", "").strip().lower() in {"1", "true", "yes", "on"}

# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Ensure output dir exists
OUTPUT_DIR.mkdir(exist_ok=True)
