# streaming_monitor.py
"""
Is the assistant still generating?

Two signals, kept apart on purpose:
1. content delta: two extractions a short delay apart differ;
2. a visible "stop generating" control, which some UIs keep up during
   thinking or tool-use pauses while the text sits still.
"""
import re
from typing import Awaitable, Callable, Dict, Iterable, Optional, Tuple

from dom_page import DomPage
from logging_config import agent_logger
from prompt_templates import locale_key
from settings import BridgeTimings


STOP_PHRASES: Dict[str, Tuple[str, ...]] = {
    "en": ("stop generating", "stop response", "stop streaming", "stop responding", "cancel generation", "stop"),
    "zh": ("停止生成", "停止回答", "停止输出", "停止响应", "停止"),
}

Extractor = Callable[[], Awaitable[str]]
SampleObserver = Callable[[str], None]


def stop_pattern(locale: str = "en") -> "re.Pattern[str]":
    """Match a control label that *is* a stop phrase (optionally followed by more words).

    The active locale's phrases come first but every language is accepted:
    the site's UI language need not match ours.
    """
    primary = locale_key(locale)
    ordered = list(STOP_PHRASES[primary]) + [
        phrase for key, phrases in STOP_PHRASES.items() if key != primary for phrase in phrases
    ]
    alternatives = "|".join(re.escape(phrase) for phrase in ordered)
    return re.compile(rf"^\s*(?:{alternatives})(?!\w)", re.IGNORECASE)


def matches_stop_phrase(labels: Iterable[str], pattern: "re.Pattern[str]") -> Optional[str]:
    for label in labels:
        if pattern.search(label or ""):
            return label
    return None


class StreamingMonitor:
    """Signals for one bridge's current container."""

    def __init__(self, page: DomPage, extract: Extractor, timings: BridgeTimings,
                 locale: str = "en", on_sample: Optional[SampleObserver] = None, name: str = ""):
        self.page = page
        self.extract = extract
        self.timings = timings
        self.pattern = stop_pattern(locale)
        self.on_sample = on_sample
        self.name = name
        self.log = agent_logger("streaming", name)

    async def sample(self) -> str:
        text = await self.extract()
        if self.on_sample is not None:
            self.on_sample(text)
        return text

    async def content_delta(self) -> Tuple[bool, str]:
        """(changed, latest text) from two reads ``delta_delay_ms`` apart."""
        first = await self.sample()
        await self.page.wait_for_timeout(self.timings.delta_delay_ms)
        second = await self.sample()
        return first != second, second

    async def affordance_visible(self) -> bool:
        try:
            labels = await self.page.visible_control_labels()
        except Exception as e:
            self.log.debug(f"Could not scan controls: {e}")
            return False
        label = matches_stop_phrase(labels, self.pattern)
        if label is not None:
            self.log.debug(f"Stop control visible: {label!r}")
        return label is not None

    async def still_streaming(self) -> Tuple[bool, str]:
        changed, text = await self.content_delta()
        if changed:
            return True, text
        return await self.affordance_visible(), text

    async def confirm_settled(self) -> Tuple[bool, str]:
        """Re-check both signals ``settle_checks`` times; any positive reading means not settled."""
        text = ""
        for check in range(self.timings.settle_checks):
            await self.page.wait_for_timeout(self.timings.settle_delay_ms)
            streaming, text = await self.still_streaming()
            if streaming:
                self.log.debug(f"Settle check {check + 1} saw activity, back to streaming")
                return False, text
        return True, text
