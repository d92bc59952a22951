import json

import pytest
from playwright.async_api import Error as PlaywrightError

from bridge_errors import DiscoveryTimeoutError
from debate_arena import DebateArena, TranscriptEntry
from prompt_templates import build_moderator_message


class FakeBridge:
    def __init__(self, name, log, replies=None):
        self.name = name
        self.log = log
        self.replies = list(replies or [])
        self.target = None
        self.resets = 0

    def set_target_bridge(self, bridge):
        self.target = bridge

    async def send(self, message=None):
        self.log.append((self.name, message, self.target.name if self.target else None))
        reply = self.replies.pop(0) if self.replies else f"{self.name} says something"
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def reset(self):
        self.resets += 1


@pytest.mark.asyncio
async def test_openings_then_alternating_rounds(tmp_path):
    calls = []
    a, b = FakeBridge("Claude", calls), FakeBridge("Gemini", calls)
    transcript = tmp_path / "logs" / "debate.jsonl"
    arena = DebateArena(a, b, transcript_path=transcript)

    history = await arena.run("tabs versus spaces", rounds=2)

    moderator = "Moderator:\n\n" + build_moderator_message("Claude", "Gemini", "tabs versus spaces")
    assert calls == [
        ("Claude", moderator, None),
        ("Gemini", moderator, "Claude"),
        ("Claude", None, "Gemini"),
        ("Gemini", None, "Claude"),
        ("Claude", None, "Gemini"),
        ("Gemini", None, "Claude"),
    ]
    assert [(e.round, e.speaker) for e in history] == [
        (0, "Claude"), (0, "Gemini"), (1, "Claude"), (1, "Gemini"), (2, "Claude"), (2, "Gemini"),
    ]

    lines = transcript.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 6
    first = TranscriptEntry(**json.loads(lines[0]))
    assert first.speaker == "Claude"
    assert first.content == "Claude says something"


@pytest.mark.asyncio
async def test_failed_turn_is_retried(tmp_path):
    calls = []
    a = FakeBridge("Claude", calls, [DiscoveryTimeoutError("no container"), "", "Opening."])
    b = FakeBridge("Gemini", calls)
    arena = DebateArena(a, b, max_round_retries=3)

    history = await arena.run("topic", rounds=0)

    assert [name for name, _, _ in calls] == ["Claude", "Claude", "Claude", "Gemini"]
    assert history[0].content == "Opening."


@pytest.mark.asyncio
async def test_retries_are_bounded(tmp_path):
    calls = []
    a = FakeBridge("Claude", calls, [DiscoveryTimeoutError("no container")] * 5)
    b = FakeBridge("Gemini", calls)
    arena = DebateArena(a, b, max_round_retries=1)

    with pytest.raises(DiscoveryTimeoutError):
        await arena.run("topic", rounds=1)
    assert len(calls) == 2
    assert arena.history == []


@pytest.mark.asyncio
async def test_page_error_during_turn_is_retried(tmp_path):
    calls = []
    a = FakeBridge("Claude", calls, [PlaywrightError("Execution context was destroyed"), "Opening."])
    b = FakeBridge("Gemini", calls)
    arena = DebateArena(a, b, max_round_retries=1)

    history = await arena.run("topic", rounds=0)

    assert [name for name, _, _ in calls] == ["Claude", "Claude", "Gemini"]
    assert history[0].content == "Opening."


@pytest.mark.asyncio
async def test_zh_moderator_label_and_close():
    calls = []
    a, b = FakeBridge("Claude", calls), FakeBridge("Gemini", calls)
    arena = DebateArena(a, b, locale="zh-cn")

    await arena.run("远程办公", rounds=0)
    assert calls[0][1].startswith("主持人:\n\n")

    await arena.close()
    assert a.resets == 1 and b.resets == 1
