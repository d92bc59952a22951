# settings.py
"""
Configuration for the debate bridge.

Values come from a ``.env`` next to this file (python-dotenv), then from the
process environment, then from explicit overrides passed by the CLI.
"""
import os
import pathlib
from typing import Dict, List, Literal, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from prompt_templates import detect_locale, locale_key

BASE_DIR = pathlib.Path(__file__).parent

ENV_PREFIX = "AGORA_"

# Generic input fallbacks, tried after a profile's own hints.
DEFAULT_INPUT_SELECTORS = [
    "[contenteditable='true'][role='textbox']",
    "div[contenteditable='true']",
    "textarea:not([readonly])",
    "input[type='text']:not([name='q'])",  # Exclude search boxes
]


# =====================================
# TIMINGS
# =====================================

class BridgeTimings(BaseModel):
    """Polling constants for one bridge. All durations in milliseconds."""

    poll_interval_ms: int = Field(500, ge=1)
    # Delay between the two reads of the content-delta signal
    delta_delay_ms: int = Field(300, ge=1)

    discovery_attempts: int = Field(60, ge=1)
    discovery_interval_ms: int = Field(500, ge=1)
    # Growth of an existing sibling that counts as the reply starting
    growth_threshold_chars: int = Field(10, ge=0)
    probe_max_chars: int = Field(60, ge=8)

    # Phase one: waiting for generation to visibly start
    start_timeout_ms: int = Field(30000, ge=1)
    # A stop control seen earlier than this may belong to the previous round
    affordance_min_elapsed_ms: int = Field(3000, ge=0)
    # Unchanged text with no stop control for this long is taken as already finished
    finished_grace_ms: int = Field(10000, ge=0)

    settle_checks: int = Field(3, ge=1)
    settle_delay_ms: int = Field(1000, ge=1)

    round_timeout_ms: int = Field(600000, ge=1)
    pre_submit_delay_ms: int = Field(300, ge=0)

    @classmethod
    def from_env(cls) -> "BridgeTimings":
        values = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{ENV_PREFIX}{name.upper()}")
            if raw not in (None, ""):
                values[name] = raw
        return cls(**values)


# =====================================
# AGENT PROFILES
# =====================================

class AgentProfile(BaseModel):
    """Everything that differs between chat sites. Reply discovery needs no selectors."""

    key: str
    name: str
    url: str
    submit: Literal["enter", "button"] = "enter"
    submit_selector: Optional[str] = None
    input_selectors: List[str] = Field(default_factory=lambda: list(DEFAULT_INPUT_SELECTORS))

    def profile_dir(self, root: pathlib.Path) -> pathlib.Path:
        return root / self.key


AGENT_PROFILES: Dict[str, AgentProfile] = {
    "claude": AgentProfile(
        key="claude",
        name="Claude",
        url="https://claude.ai/new",
        input_selectors=[
            "[data-testid='chat-input']",
            "div[contenteditable='true'].ProseMirror",
            *DEFAULT_INPUT_SELECTORS,
        ],
    ),
    "gemini": AgentProfile(
        key="gemini",
        name="Gemini",
        url="https://gemini.google.com/app",
        input_selectors=[
            ".ql-editor[contenteditable='true']",
            "rich-textarea .ql-editor",
            *DEFAULT_INPUT_SELECTORS,
        ],
    ),
    "chatgpt": AgentProfile(
        key="chatgpt",
        name="ChatGPT",
        url="https://chatgpt.com",
        input_selectors=[
            "#prompt-textarea",
            "div.ProseMirror[contenteditable='true']",
            *DEFAULT_INPUT_SELECTORS,
        ],
    ),
}


def get_profile(key: str) -> AgentProfile:
    try:
        return AGENT_PROFILES[key.lower()]
    except KeyError:
        known = ", ".join(sorted(AGENT_PROFILES))
        raise ValueError(f"Unknown agent '{key}' (known: {known})") from None


# =====================================
# ARENA SETTINGS
# =====================================

class ArenaSettings(BaseModel):
    topic: str = "AI will replace most software engineering work within 5 years"
    rounds: int = Field(5, ge=1)
    agents: Tuple[str, str] = ("claude", "gemini")
    locale: str = "en"
    log_dir: pathlib.Path = pathlib.Path("logs")
    profiles_dir: pathlib.Path = pathlib.Path("profiles")
    cdp_url: Optional[str] = None
    max_round_retries: int = Field(3, ge=0)
    window_width: int = 900
    window_height: int = 1000
    timings: BridgeTimings = Field(default_factory=BridgeTimings)


def load_settings(env_file: Optional[pathlib.Path] = None, **overrides) -> ArenaSettings:
    """Build ArenaSettings from .env + environment; non-None overrides win."""
    load_dotenv(env_file or BASE_DIR / ".env")

    values = {
        "locale": locale_key(os.getenv(f"{ENV_PREFIX}LOCALE") or detect_locale()),
        "timings": BridgeTimings.from_env(),
    }
    env_fields = {
        "topic": "TOPIC",
        "rounds": "ROUNDS",
        "log_dir": "LOG_DIR",
        "profiles_dir": "PROFILES_DIR",
        "cdp_url": "CDP_URL",
        "max_round_retries": "MAX_ROUND_RETRIES",
    }
    for field, suffix in env_fields.items():
        raw = os.getenv(f"{ENV_PREFIX}{suffix}", "").strip()
        if raw:
            values[field] = raw

    agents = os.getenv(f"{ENV_PREFIX}AGENTS", "").strip()
    if agents:
        values["agents"] = tuple(a.strip() for a in agents.split(",") if a.strip())

    values.update({k: v for k, v in overrides.items() if v is not None})
    if "locale" in overrides and overrides["locale"]:
        values["locale"] = locale_key(overrides["locale"])

    return ArenaSettings(**values)
