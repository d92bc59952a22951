# agent_bridge.py
"""
One bridge per chat participant.

send() types a message, submits it, finds where the reply is rendering,
follows it while it streams (mirroring partial text into the counterpart's
input box) and returns the settled text.

    Idle → Sending → AwaitingStart → Streaming ⇄ Settling → Done
                                  ↘ TimedOut / Failed
"""
import asyncio
import time
from enum import Enum
from typing import Callable, Optional, Set

from bridge_errors import (
    BridgeBusyError,
    NoContentError,
    NoInputFoundError,
    StaleNodeError,
    StreamingTimeoutError,
)
from chat_input import find_input, inject_text, submit
from container_discovery import ContainerDiscovery, ContainerState, extract_reply, mark_children_seen
from dom_page import DomNodeRef, DomPage
from logging_config import agent_logger, console_forwarder
from prompt_templates import build_turn_prompt
from settings import AgentProfile, BridgeTimings
from streaming_monitor import StreamingMonitor


class BridgePhase(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_START = "awaiting_start"
    STREAMING = "streaming"
    SETTLING = "settling"
    DONE = "done"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


# Outcomes of the AwaitingStart phase
_STARTED = "started"
_FINISHED = "finished"
_EXPIRED = "expired"


class AgentBridge:
    def __init__(
        self,
        page: DomPage,
        profile: AgentProfile,
        timings: Optional[BridgeTimings] = None,
        locale: str = "en",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.page = page
        self.profile = profile
        self.name = profile.name
        self.log = agent_logger("bridge", self.name)
        self.timings = timings or BridgeTimings()
        self.locale = locale
        self._clock = clock

        self.phase = BridgePhase.IDLE
        self.state = ContainerState()
        self.rounds_completed = 0

        self._target: Optional["AgentBridge"] = None
        self._input: Optional[DomNodeRef] = None
        self._mirrored_text: Optional[str] = None
        self._busy = False
        self._updating = False
        self._last_text = ""
        # Longest non-empty extraction of the round; what a timeout hands back
        self._best_text = ""
        self._last_pushed: Optional[str] = None
        self._push_tasks: Set[asyncio.Task] = set()
        self._discarded = []
        self._navigated = False

        self.discovery = ContainerDiscovery(page, self.timings, self.name)
        self.monitor = StreamingMonitor(
            page, self._extract, self.timings, locale, on_sample=self._observe, name=self.name
        )

        page.on_navigate(self._on_navigate)
        page.on_console_message(console_forwarder(self.name))

    # =====================================
    # PUBLIC SURFACE
    # =====================================

    def set_target_bridge(self, bridge: Optional["AgentBridge"]) -> None:
        self._target = bridge

    @property
    def mirrored_text(self) -> Optional[str]:
        return self._mirrored_text

    async def send(self, message: Optional[str] = None) -> str:
        """Send ``message`` (or the last mirrored text when None) and return the settled reply."""
        if self._busy:
            raise BridgeBusyError(f"[{self.name}] A round is already in flight")

        text = message if message is not None else self._mirrored_text
        if text is None or not text.strip():
            self.phase = BridgePhase.FAILED
            raise NoContentError(f"[{self.name}] Nothing to send: no message and no mirrored text")

        self._busy = True
        try:
            return await self._run_round(text)
        except Exception:
            self.phase = BridgePhase.FAILED
            raise
        finally:
            self._busy = False

    async def update_input(self, text: str) -> None:
        """Mirror ``text`` into this agent's input box. Best effort, never raises."""
        self._mirrored_text = text
        if self._updating or self._busy:
            return

        self._updating = True
        try:
            node = await self._locate_input()
            await inject_text(self.page, node, text)
        except Exception as e:
            self.log.warning(f"⚠️ Could not mirror text into input: {type(e).__name__}: {e}")
        finally:
            self._updating = False

    async def reset(self) -> None:
        """Release every cached handle and forget the discovered container."""
        await self._flush_discarded()
        for ref in self.state.refs():
            await self.page.release(ref)
        await self.page.release(self._input)
        self.state = ContainerState()
        self._input = None
        self._navigated = False

    # =====================================
    # ROUND
    # =====================================

    async def _run_round(self, text: str) -> str:
        self._last_text = ""
        self._best_text = ""
        self._last_pushed = None
        if self._navigated:
            self.log.info(f"Page navigated during the last round, rediscovering")
            self._forget_dom()
        await self._flush_discarded()
        await self._drop_stale_state()

        deadline = self._clock() + self.timings.round_timeout_ms / 1000

        # ----- Sending -----
        self.phase = BridgePhase.SENDING
        self.log.info(f"Sending message ({len(text)} chars)...")
        node = await self._locate_input()
        await inject_text(self.page, node, text)
        await self.page.wait_for_timeout(self.timings.pre_submit_delay_ms)
        await self._mark_tracked_seen()
        await submit(self.page, self.profile, node)
        submitted_at = self._clock()

        # ----- AwaitingStart -----
        self.phase = BridgePhase.AWAITING_START
        if self.state.container is None and self.state.scroll_ancestor is None:
            new_state = await self.discovery.discover_by_probe(text)
        else:
            new_state = await self.discovery.discover_by_marker(self.state, text)
        await self._adopt(new_state)

        baseline = await self._extract()
        outcome, latest = await self._await_start(baseline, submitted_at, deadline)
        if outcome == _EXPIRED:
            self.phase = BridgePhase.TIMED_OUT
            self.log.warning(f"⚠️ Reply never started within the round budget")
            return ""

        # ----- Streaming / Settling -----
        if outcome == _FINISHED:
            final = latest
        else:
            try:
                final = await self._stream_until_settled(deadline)
            except StreamingTimeoutError as e:
                self.phase = BridgePhase.TIMED_OUT
                self.log.warning(f"⚠️ {e}; keeping {len(e.partial_text)} chars of partial output")
                final = e.partial_text

        # ----- Done -----
        await self._push_final(final)
        await self._mark_tracked_seen()
        self.state.branch_index = None
        self.rounds_completed += 1
        if self.phase != BridgePhase.TIMED_OUT:
            self.phase = BridgePhase.DONE
        self.log.info(f"✓ Response received ({len(final)} chars)")
        return final

    async def _await_start(self, baseline: str, submitted_at: float, deadline: float):
        start_deadline = submitted_at + self.timings.start_timeout_ms / 1000
        latest = baseline
        while self._clock() < deadline:
            now = self._clock()
            if now >= start_deadline:
                self.log.info(f"No visible start yet, following the container anyway")
                return _STARTED, latest

            latest = await self.monitor.sample()
            if latest and latest != baseline:
                return _STARTED, latest

            elapsed_ms = (now - submitted_at) * 1000
            # An earlier stop control may still be closing from the previous round.
            if elapsed_ms >= self.timings.affordance_min_elapsed_ms:
                if await self.monitor.affordance_visible():
                    return _STARTED, latest
                # Weaker heuristic: no confirmation loop behind it.
                if latest and elapsed_ms >= self.timings.finished_grace_ms:
                    self.log.info(f"Text unchanged with no stop control, taking it as finished")
                    return _FINISHED, latest

            await self.page.wait_for_timeout(self.timings.poll_interval_ms)
        return _EXPIRED, latest

    async def _stream_until_settled(self, deadline: float) -> str:
        self.phase = BridgePhase.STREAMING
        while self._clock() < deadline:
            await self._scroll_to_end()
            streaming, text = await self.monitor.still_streaming()
            # Nothing rendered yet is not a finished reply.
            if streaming or not text:
                await self.page.wait_for_timeout(self.timings.poll_interval_ms)
                continue

            self.phase = BridgePhase.SETTLING
            settled, text = await self.monitor.confirm_settled()
            if settled and text:
                final = await self._extract()
                return final or text
            self.phase = BridgePhase.STREAMING

        raise StreamingTimeoutError("Generation did not settle within the round budget", self._best_text)

    # =====================================
    # MIRRORING
    # =====================================

    def _observe(self, text: str) -> None:
        if not text or text == self._last_pushed:
            return
        self._last_pushed = text
        if self._target is None:
            return
        task = asyncio.ensure_future(self._target.update_input(f"{self.name}:\n\n{text}"))
        self._push_tasks.add(task)
        task.add_done_callback(self._push_tasks.discard)

    async def _push_final(self, final: str) -> None:
        if self._target is None:
            return
        if self._push_tasks:
            await asyncio.gather(*list(self._push_tasks))
        suffix = build_turn_prompt(self._target.name, self.locale)
        await self._target.update_input(f"{self.name}:\n\n{final}{suffix}")

    # =====================================
    # DOM STATE
    # =====================================

    async def _extract(self) -> str:
        try:
            text = await extract_reply(self.page, self.state)
        except Exception as e:
            # Re-renders can pull nodes out from under a read; the next poll retries.
            self.log.debug(f"Extraction failed, keeping last text: {e}")
            return self._last_text
        self._last_text = text
        if len(text) >= len(self._best_text):
            self._best_text = text
        return text

    async def _scroll_to_end(self) -> None:
        target = self.state.scroll_ancestor or self.state.container
        if target is None:
            return
        try:
            await self.page.scroll_to_end(target)
        except Exception as e:
            self.log.debug(f"Scroll failed: {e}")

    async def _locate_input(self) -> DomNodeRef:
        if self._input is not None:
            try:
                return await self.page.ensure_live(self._input)
            except StaleNodeError:
                await self.page.release(self._input)
                self._input = None

        node = await find_input(self.page, self.profile.input_selectors)
        if node is None:
            raise NoInputFoundError(f"[{self.name}] Could not find an input field with any selector")
        self._input = node
        return node

    async def _mark_tracked_seen(self) -> None:
        for ref in self.state.refs():
            await mark_children_seen(self.page, ref)

    async def _adopt(self, new_state: ContainerState) -> None:
        keep = {id(ref) for ref in new_state.refs()}
        for ref in self.state.refs():
            if id(ref) not in keep:
                await self.page.release(ref)
        self.state = new_state

    async def _drop_stale_state(self) -> None:
        try:
            for ref in self.state.refs():
                await self.page.ensure_live(ref)
        except StaleNodeError as e:
            self.log.info(f"Cached container is gone ({e}); rediscovering")
            for ref in self.state.refs():
                await self.page.release(ref)
            self.state = ContainerState()

    async def _flush_discarded(self) -> None:
        discarded, self._discarded = self._discarded, []
        for ref in discarded:
            await self.page.release(ref)

    def _on_navigate(self) -> None:
        # SPA route changes fire this too, right after a submit; the round in
        # flight keeps its container and the next round rediscovers.
        if self._busy:
            self.log.info(f"Page navigated mid-round, rediscovering next round")
            self._navigated = True
            return
        self.log.info(f"Page navigated, dropping cached DOM handles")
        self._forget_dom()

    def _forget_dom(self) -> None:
        """Queue every cached handle for release; the next round starts from probe mode."""
        self._discarded.extend(self.state.refs())
        if self._input is not None:
            self._discarded.append(self._input)
        self.state = ContainerState()
        self._input = None
        self._navigated = False
