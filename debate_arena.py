# debate_arena.py
"""
Runs a debate between two cross-wired bridges and keeps the transcript.

Each bridge mirrors its streaming output into the other's input box, so
after the openings every turn is just ``send(None)``: the agent submits
what its counterpart already pushed into it.
"""
import json
import logging
import pathlib
from datetime import datetime, timezone
from typing import List, Optional

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, ConfigDict

from agent_bridge import AgentBridge
from bridge_errors import BridgeError
from logging_config import log_exception
from prompt_templates import build_moderator_message, moderator_label

logger = logging.getLogger("agora.arena")

PREVIEW_CHARS = 200


class TranscriptEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    timestamp: str
    round: int
    speaker: str
    content: str


class DebateArena:
    def __init__(
        self,
        bridge_a: AgentBridge,
        bridge_b: AgentBridge,
        transcript_path: Optional[pathlib.Path] = None,
        locale: str = "en",
        max_round_retries: int = 3,
    ):
        self.bridge_a = bridge_a
        self.bridge_b = bridge_b
        self.transcript_path = transcript_path
        self.locale = locale
        self.max_round_retries = max_round_retries
        self.history: List[TranscriptEntry] = []

        self.bridge_a.set_target_bridge(self.bridge_b)
        self.bridge_b.set_target_bridge(self.bridge_a)

    async def run(self, topic: str, rounds: int) -> List[TranscriptEntry]:
        a, b = self.bridge_a, self.bridge_b

        logger.info("=" * 60)
        logger.info("AGORA - AI Debate Arena")
        logger.info(f"Topic: {topic}")
        logger.info(f"Participants: {a.name} vs {b.name}")
        logger.info(f"Rounds: {rounds}")
        if self.transcript_path:
            logger.info(f"Transcript: {self.transcript_path}")
        logger.info("=" * 60)

        brief = build_moderator_message(a.name, b.name, topic, self.locale)
        moderator_msg = f"{moderator_label(self.locale)}:\n\n{brief}"

        # ===== OPENING STATEMENTS =====
        logger.info("========== OPENING STATEMENTS ==========")

        # A opens with nothing mirrored: B has not spoken yet.
        a.set_target_bridge(None)
        b.set_target_bridge(None)
        await self._turn(0, a, moderator_msg)

        # B's opening streams into A so A can answer it next.
        b.set_target_bridge(a)
        await self._turn(0, b, moderator_msg)

        a.set_target_bridge(b)

        # ===== MAIN LOOP =====
        for round_no in range(1, rounds + 1):
            logger.info(f"========== ROUND {round_no} ==========")
            await self._turn(round_no, a, None)
            await self._turn(round_no, b, None)

        logger.info("✅ Debate finished!")
        return self.history

    async def close(self) -> None:
        await self.bridge_a.reset()
        await self.bridge_b.reset()

    async def _turn(self, round_no: int, bridge: AgentBridge, message: Optional[str]) -> str:
        """One send with retries. A turn that never yields text is logged as empty."""
        attempts = self.max_round_retries + 1
        text = ""
        for attempt in range(1, attempts + 1):
            try:
                text = await bridge.send(message)
            except (BridgeError, PlaywrightError) as e:
                log_exception(logger, e, f"round {round_no} ({bridge.name})")
                if attempt == attempts:
                    raise
                logger.info(f"Retrying {bridge.name} ({attempt}/{self.max_round_retries})...")
                continue

            if text:
                break
            logger.warning(f"⚠️ {bridge.name} returned no text (attempt {attempt}/{attempts})")

        self.log(round_no, bridge.name, text)
        preview = text[:PREVIEW_CHARS] + ("..." if len(text) > PREVIEW_CHARS else "")
        logger.info(f"[{bridge.name}]:\n{preview}\n")
        return text

    def log(self, round_no: int, speaker: str, content: str) -> TranscriptEntry:
        entry = TranscriptEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            round=round_no,
            speaker=speaker,
            content=content,
        )
        self.history.append(entry)
        if self.transcript_path is not None:
            self._append_line(entry)
        return entry

    def _append_line(self, entry: TranscriptEntry) -> None:
        self.transcript_path.parent.mkdir(parents=True, exist_ok=True)
        with self.transcript_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry.model_dump(), ensure_ascii=False) + "\n")
