# container_discovery.py
"""
Response-container discovery.

No reply selectors are assumed. The container is inferred from where the
DOM changes after a submit:

* probe mode (first round): find the echoed user message by its longest
  line, then watch every ancestor level for a new or growing sibling that
  is not the echo. The parent of the first level that moves is the
  container.
* marker mode (later rounds): every child present at send time carries the
  seen attribute, so an unmarked visible child is new. A new wrapper under
  the scroll ancestor wins over a new child in the previous container.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from bridge_errors import DiscoveryTimeoutError
from dom_page import DomNodeRef, DomPage, held_nodes
from logging_config import agent_logger
from settings import BridgeTimings
from visible_text import extract_visible_text


SCROLLABLE_OVERFLOW = {"auto", "scroll", "overlay"}

PROBE = "probe"
WRAPPER = "wrapper"
FLAT = "flat"


@dataclass
class ContainerState:
    """Where this round's reply lives. Refs are owned by the bridge holding the state."""

    container: Optional[DomNodeRef] = None
    scroll_ancestor: Optional[DomNodeRef] = None
    # Probe mode only: index of the echoed user message under ``container``
    branch_index: Optional[int] = None
    mode: Optional[str] = None
    probe: str = ""
    # Whitespace-squashed text that was sent this round
    sent: str = ""

    def refs(self) -> List[DomNodeRef]:
        return [ref for ref in (self.container, self.scroll_ancestor) if ref is not None]


@dataclass
class _Level:
    parent: DomNodeRef
    branch: DomNodeRef
    # Text length of every sibling of ``branch``, in order, branch excluded
    baseline: List[int] = field(default_factory=list)


def squash(text: str) -> str:
    return " ".join((text or "").split())


def pick_probe(text: str, max_chars: int) -> str:
    """Longest line of ``text``, whitespace-squashed and cut to ``max_chars``."""
    lines = [squash(line) for line in (text or "").splitlines()]
    longest = max(lines, key=len, default="")
    return longest[:max_chars].strip()


class ContainerDiscovery:
    def __init__(self, page: DomPage, timings: BridgeTimings, name: str = ""):
        self.page = page
        self.timings = timings
        self.name = name
        self.log = agent_logger("discovery", name)

    # =====================================
    # PROBE MODE
    # =====================================

    async def discover_by_probe(self, sent_text: str) -> ContainerState:
        probe = pick_probe(sent_text, self.timings.probe_max_chars)
        if not probe:
            raise DiscoveryTimeoutError(f"[{self.name}] Sent text has no usable probe line")

        self.log.debug(f"Probe discovery with probe {probe!r}")
        levels: Optional[List[_Level]] = None
        chain: List[DomNodeRef] = []
        try:
            for attempt in range(self.timings.discovery_attempts):
                try:
                    if levels is None:
                        anchor = await self.find_probe_anchor(probe)
                        if anchor is not None:
                            chain = [anchor]
                            levels = await self._collect_levels(anchor, chain)
                            self.log.debug(f"Echo found, watching {len(levels)} ancestor level(s)")
                    else:
                        hit = await self._check_levels(levels, probe)
                        if hit is not None:
                            level, branch_index = hit
                            scroll_ancestor = await self.nearest_scroll_ancestor(level.parent)
                            chain.remove(level.parent)
                            self.log.info(f"✓ Reply container found (attempt {attempt + 1})")
                            return ContainerState(
                                container=level.parent,
                                scroll_ancestor=scroll_ancestor,
                                branch_index=branch_index,
                                mode=PROBE,
                                probe=probe,
                                sent=squash(sent_text),
                            )
                except Exception as e:
                    # The page re-rendered under us: start over from the echo.
                    self.log.debug(f"Probe poll {attempt + 1} failed, retrying: {type(e).__name__}: {e}")
                    for ref in chain:
                        await self.page.release(ref)
                    chain, levels = [], None
                await self.page.wait_for_timeout(self.timings.discovery_interval_ms)
        finally:
            for ref in chain:
                await self.page.release(ref)

        raise DiscoveryTimeoutError(
            f"[{self.name}] No reply appeared next to the sent message "
            f"after {self.timings.discovery_attempts} attempts"
        )

    async def find_probe_anchor(self, probe: str) -> Optional[DomNodeRef]:
        """Deepest element whose text contains ``probe``, newest subtree first."""
        node = await self.page.body()
        if probe not in squash(await self.page.rendered_text(node)):
            await self.page.release(node)
            return None

        while True:
            kids = await self.page.children(node)
            match = None
            async with held_nodes(self.page, kids) as held:
                for kid in reversed(kids):
                    if probe in squash(await self.page.rendered_text(kid)):
                        match = kid
                        held.remove(kid)
                        break
            if match is None:
                break
            await self.page.release(node)
            node = match

        # Text still sitting in the composer is not the echo.
        if await self.page.is_editable(node):
            await self.page.release(node)
            return None
        return node

    async def _collect_levels(self, anchor: DomNodeRef, chain: List[DomNodeRef]) -> List[_Level]:
        """Baselines for every sized ancestor level; each ancestor is appended to ``chain``.

        Siblings before the echo are earlier turns. They get the seen marker
        so extraction skips them when the page already holds a conversation.
        """
        levels: List[_Level] = []
        node = anchor
        while True:
            parent = await self.page.parent(node)
            if parent is None:
                break
            chain.append(parent)

            if (await self.page.box(parent)).area > 0:
                baseline = []
                before_branch = True
                kids = await self.page.children(parent)
                async with held_nodes(self.page, kids):
                    for kid in kids:
                        if before_branch and await self.page.same_node(kid, node):
                            before_branch = False
                            continue
                        if before_branch:
                            await self.page.mark_seen(kid)
                        baseline.append(len(squash(await self.page.rendered_text(kid))))
                levels.append(_Level(parent=parent, branch=node, baseline=baseline))

            if await self.page.tag_name(parent) == "body":
                break
            if await self.page.overflow_y(parent) in SCROLLABLE_OVERFLOW:
                break
            node = parent
        return levels

    async def _check_levels(self, levels: List[_Level], probe: str) -> Optional[Tuple[_Level, int]]:
        for level in levels:
            kids = await self.page.children(level.parent)
            async with held_nodes(self.page, kids):
                branch_index = None
                others = []
                for i, kid in enumerate(kids):
                    if branch_index is None and await self.page.same_node(kid, level.branch):
                        branch_index = i
                    else:
                        others.append(kid)
                if branch_index is None:
                    continue

                for j, kid in enumerate(others):
                    text = squash(await self.page.rendered_text(kid))
                    if probe in text:
                        continue
                    if j >= len(level.baseline):
                        return level, branch_index
                    if len(text) - level.baseline[j] > self.timings.growth_threshold_chars:
                        return level, branch_index
        return None

    async def nearest_scroll_ancestor(self, node: DomNodeRef) -> DomNodeRef:
        """First ancestor above ``node`` with scrollable overflow, else <body>."""
        current = await self.page.parent(node)
        while current is not None:
            if await self.page.overflow_y(current) in SCROLLABLE_OVERFLOW:
                return current
            if await self.page.tag_name(current) == "body":
                return current
            parent = await self.page.parent(current)
            await self.page.release(current)
            current = parent
        return await self.page.body()

    # =====================================
    # MARKER MODE
    # =====================================

    async def discover_by_marker(self, previous: ContainerState, sent_text: str) -> ContainerState:
        probe = pick_probe(sent_text, self.timings.probe_max_chars)
        self.log.debug(f"Marker discovery")

        for attempt in range(self.timings.discovery_attempts):
            try:
                # Wrapper-per-turn first: lazily rendered chrome inside a long-lived
                # container is the common false positive of the flat check.
                if previous.scroll_ancestor is not None:
                    wrapper = await self._newest_unmarked_child(previous.scroll_ancestor)
                    if wrapper is not None:
                        self.log.info(f"✓ New turn wrapper found (attempt {attempt + 1})")
                        return ContainerState(
                            container=wrapper,
                            scroll_ancestor=previous.scroll_ancestor,
                            mode=WRAPPER,
                            probe=probe,
                            sent=squash(sent_text),
                        )

                if previous.container is not None:
                    fresh = await self._newest_unmarked_child(previous.container)
                    if fresh is not None:
                        await self.page.release(fresh)
                        self.log.info(f"✓ New message in previous container (attempt {attempt + 1})")
                        return ContainerState(
                            container=previous.container,
                            scroll_ancestor=previous.scroll_ancestor,
                            mode=FLAT,
                            probe=probe,
                            sent=squash(sent_text),
                        )
            except Exception as e:
                self.log.debug(f"Marker poll {attempt + 1} failed, retrying: {type(e).__name__}: {e}")

            await self.page.wait_for_timeout(self.timings.discovery_interval_ms)

        raise DiscoveryTimeoutError(
            f"[{self.name}] No unmarked content appeared after {self.timings.discovery_attempts} attempts"
        )

    async def _newest_unmarked_child(self, parent: DomNodeRef) -> Optional[DomNodeRef]:
        kids = await self.page.children(parent)
        async with held_nodes(self.page, kids) as held:
            for kid in reversed(kids):
                if await self.page.is_marked(kid):
                    continue
                if (await self.page.box(kid)).area <= 0:
                    continue
                held.remove(kid)
                return kid
        return None


# =====================================
# MARKERS + EXTRACTION
# =====================================

async def mark_children_seen(page: DomPage, parent: DomNodeRef) -> int:
    kids = await page.children(parent)
    async with held_nodes(page, kids):
        for kid in kids:
            await page.mark_seen(kid)
    return len(kids)


async def extract_reply(page: DomPage, state: ContainerState) -> str:
    """Visible text of the reply in ``state.container``, without the echoed user message."""
    if state.container is None:
        return ""
    skip_marked = state.mode in (PROBE, FLAT)
    return await _reply_text(page, state.container, state.probe, state.sent, skip_marked, state.branch_index)


async def _reply_text(page: DomPage, node: DomNodeRef, probe: str, sent: str, skip_marked: bool,
                      skip_index: Optional[int]) -> str:
    kids = await page.children(node)
    async with held_nodes(page, kids):
        candidates = []
        for i, kid in enumerate(kids):
            if i == skip_index:
                continue
            if skip_marked and await page.is_marked(kid):
                continue
            candidates.append(kid)

        if skip_index is None and probe:
            texts = [squash(await page.rendered_text(kid)) for kid in candidates]
            echoes = [i for i, text in enumerate(texts) if probe in text]
            if echoes:
                # The earliest match is the user's message; a later one may be a quote.
                first = echoes[0]
                if sent and texts[first] in sent:
                    candidates.pop(first)
                elif len(candidates) == 1:
                    # Echo and reply share one child: look further down.
                    return await _reply_text(page, candidates[0], probe, sent, False, None)
                else:
                    candidates.pop(first)

        pieces = [await extract_visible_text(page, kid) for kid in candidates]
    return "\n".join(piece for piece in pieces if piece)
