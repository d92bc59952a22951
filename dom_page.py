# dom_page.py
"""
Page capability used by the bridges.

DomPage is the only I/O surface the discovery and streaming code touches:
node queries, layout/style reads, marker tagging and input simulation.
PlaywrightDomPage implements it over a live ``playwright.async_api.Page``;
the tests implement it over an in-memory tree.

DomNodeRef is an owned resource. Whoever acquired a ref releases it with
``DomPage.release`` (or ``held_nodes``) when it is replaced or dropped.
"""
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from playwright.async_api import Error as PlaywrightError, Page

from bridge_errors import StaleNodeError

logger = logging.getLogger("agora.page")

# Attribute set on DOM nodes that were already present when a round was sent.
SEEN_ATTRIBUTE = "data-agora-seen"

# Controls scanned for a "stop generating" affordance.
CONTROL_SELECTOR = 'button, [role="button"], input[type="button"], input[type="submit"]'

Path = Tuple[int, ...]


@dataclass(frozen=True)
class Box:
    width: float
    height: float

    @property
    def area(self) -> float:
        return self.width * self.height


class DomNodeRef:
    """Opaque handle to a node inside a page. Released at most once."""

    __slots__ = ("handle", "released")

    def __init__(self, handle: Any):
        self.handle = handle
        self.released = False

    def __repr__(self):
        state = "released" if self.released else "live"
        return f"<DomNodeRef {state} {self.handle!r}>"


class DomPage(ABC):
    """Abstract async DOM capability over one browser tab."""

    # --- queries -----------------------------------------------------------

    @abstractmethod
    async def body(self) -> DomNodeRef: ...

    @abstractmethod
    async def query_all(self, selector: str) -> List[DomNodeRef]: ...

    @abstractmethod
    async def children(self, node: DomNodeRef) -> List[DomNodeRef]:
        """Element children, in document order."""

    @abstractmethod
    async def child_nodes(self, node: DomNodeRef) -> List[Union[str, DomNodeRef]]:
        """Text and element children in document order; text nodes come back as str."""

    @abstractmethod
    async def parent(self, node: DomNodeRef) -> Optional[DomNodeRef]: ...

    @abstractmethod
    async def same_node(self, a: DomNodeRef, b: DomNodeRef) -> bool: ...

    @abstractmethod
    async def tag_name(self, node: DomNodeRef) -> str: ...

    @abstractmethod
    async def rendered_text(self, node: DomNodeRef) -> str:
        """What ``innerText`` reports for the node."""

    @abstractmethod
    async def box(self, node: DomNodeRef) -> Box: ...

    @abstractmethod
    async def layout_boxes(self, root: DomNodeRef) -> List[Tuple[Path, Box]]:
        """Every element descendant of root, keyed by its element-child index path."""

    @abstractmethod
    async def overflow_y(self, node: DomNodeRef) -> str: ...

    @abstractmethod
    async def is_connected(self, node: DomNodeRef) -> bool: ...

    @abstractmethod
    async def visible_control_labels(self) -> List[str]:
        """aria-label, title and text of every visible interactive control."""

    # --- markers -----------------------------------------------------------

    @abstractmethod
    async def is_marked(self, node: DomNodeRef) -> bool: ...

    @abstractmethod
    async def mark_seen(self, node: DomNodeRef) -> None: ...

    # --- input simulation --------------------------------------------------

    @abstractmethod
    async def is_editable(self, node: DomNodeRef) -> bool: ...

    @abstractmethod
    async def input_text(self, node: DomNodeRef) -> str:
        """Logical content of an input region (value or contenteditable text)."""

    @abstractmethod
    async def focus(self, node: DomNodeRef) -> None: ...

    @abstractmethod
    async def clear_input(self, node: DomNodeRef) -> None: ...

    @abstractmethod
    async def insert_text(self, text: str) -> None:
        """Insert text at the focused element without key events per character."""

    @abstractmethod
    async def press(self, key: str) -> None: ...

    @abstractmethod
    async def click(self, node: DomNodeRef) -> None: ...

    @abstractmethod
    async def scroll_to_end(self, node: DomNodeRef) -> None: ...

    # --- lifecycle ---------------------------------------------------------

    @abstractmethod
    async def wait_for_timeout(self, ms: float) -> None: ...

    @abstractmethod
    async def _dispose(self, node: DomNodeRef) -> None: ...

    @abstractmethod
    def on_navigate(self, callback: Callable[[], None]) -> None: ...

    @abstractmethod
    def on_console_message(self, callback: Callable[[str], None]) -> None: ...

    async def release(self, node: Optional[DomNodeRef]) -> None:
        if node is None or node.released:
            return
        node.released = True
        await self._dispose(node)

    async def ensure_live(self, node: DomNodeRef) -> DomNodeRef:
        """Raise StaleNodeError instead of letting a dead ref be dereferenced."""
        if node.released:
            raise StaleNodeError(f"{node!r} was already released")
        if not await self.is_connected(node):
            raise StaleNodeError(f"{node!r} is no longer in the document")
        return node


@asynccontextmanager
async def held_nodes(page: DomPage, nodes: Iterable[DomNodeRef]):
    """Release every ref in ``nodes`` on exit. Remove a ref from the yielded list to keep it."""
    held = list(nodes)
    try:
        yield held
    finally:
        for node in held:
            await page.release(node)


def is_visually_hidden(box: Box) -> bool:
    """Near-zero box that is still laid out (the sr-only pattern)."""
    return box.area <= 1.0 and (box.width + box.height) > 0


# =====================================
# PLAYWRIGHT IMPLEMENTATION
# =====================================

_LAYOUT_BOXES_JS = """
(root) => {
    const out = [];
    const walk = (el, path) => {
        Array.from(el.children).forEach((child, i) => {
            const p = path.concat([i]);
            const r = child.getBoundingClientRect();
            out.push([p, r.width, r.height]);
            walk(child, p);
        });
    };
    walk(root, []);
    return out;
}
"""

_CHILD_NODE_KINDS_JS = """
(el) => Array.from(el.childNodes)
    .filter(n => n.nodeType === 1 || n.nodeType === 3)
    .map(n => n.nodeType === 3 ? n.textContent : null)
"""

_CONTROL_LABELS_JS = """
(selector) => {
    const labels = [];
    for (const el of document.querySelectorAll(selector)) {
        const r = el.getBoundingClientRect();
        const style = getComputedStyle(el);
        if (r.width <= 0 || r.height <= 0 || style.visibility === 'hidden') continue;
        for (const label of [el.getAttribute('aria-label'), el.getAttribute('title'), el.innerText || el.value]) {
            if (label && label.trim()) labels.push(label.trim());
        }
    }
    return labels;
}
"""

_IS_EDITABLE_JS = """
(el) => el.isContentEditable
    || (el.tagName === 'TEXTAREA' && !el.readOnly && !el.disabled)
    || (el.tagName === 'INPUT' && !el.readOnly && !el.disabled)
"""


class PlaywrightDomPage(DomPage):
    """DomPage over a Playwright async Page."""

    def __init__(self, page: Page):
        self.page = page

    async def body(self) -> DomNodeRef:
        handle = await self.page.query_selector("body")
        if handle is None:
            raise StaleNodeError("document has no <body>")
        return DomNodeRef(handle)

    async def query_all(self, selector: str) -> List[DomNodeRef]:
        return [DomNodeRef(h) for h in await self.page.query_selector_all(selector)]

    async def children(self, node: DomNodeRef) -> List[DomNodeRef]:
        array = await node.handle.evaluate_handle("el => Array.from(el.children)")
        try:
            props = await array.get_properties()
            refs = []
            for key in sorted((k for k in props if k.isdigit()), key=int):
                element = props[key].as_element()
                if element is not None:
                    refs.append(DomNodeRef(element))
                else:
                    await props[key].dispose()
            return refs
        finally:
            await array.dispose()

    async def child_nodes(self, node: DomNodeRef) -> List[Union[str, DomNodeRef]]:
        kinds = await node.handle.evaluate(_CHILD_NODE_KINDS_JS)
        elements = iter(await self.children(node))
        out: List[Union[str, DomNodeRef]] = []
        for kind in kinds:
            if kind is not None:
                out.append(kind)
                continue
            element = next(elements, None)
            if element is not None:
                out.append(element)
        # The tree may have grown between the two reads.
        for leftover in elements:
            await self.release(leftover)
        return out

    async def parent(self, node: DomNodeRef) -> Optional[DomNodeRef]:
        handle = await node.handle.evaluate_handle("el => el.parentElement")
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return DomNodeRef(element)

    async def same_node(self, a: DomNodeRef, b: DomNodeRef) -> bool:
        return await a.handle.evaluate("(a, b) => a === b", b.handle)

    async def tag_name(self, node: DomNodeRef) -> str:
        return (await node.handle.evaluate("el => el.tagName")).lower()

    async def rendered_text(self, node: DomNodeRef) -> str:
        return await node.handle.evaluate("el => el.innerText || ''")

    async def box(self, node: DomNodeRef) -> Box:
        width, height = await node.handle.evaluate(
            "el => { const r = el.getBoundingClientRect(); return [r.width, r.height]; }"
        )
        return Box(width, height)

    async def layout_boxes(self, root: DomNodeRef) -> List[Tuple[Path, Box]]:
        rows = await root.handle.evaluate(_LAYOUT_BOXES_JS)
        return [(tuple(path), Box(width, height)) for path, width, height in rows]

    async def overflow_y(self, node: DomNodeRef) -> str:
        return await node.handle.evaluate("el => getComputedStyle(el).overflowY")

    async def is_connected(self, node: DomNodeRef) -> bool:
        try:
            return await node.handle.evaluate("el => el.isConnected")
        except PlaywrightError:
            # Execution context destroyed: the node went away with its document.
            return False

    async def visible_control_labels(self) -> List[str]:
        return await self.page.evaluate(_CONTROL_LABELS_JS, CONTROL_SELECTOR)

    async def is_marked(self, node: DomNodeRef) -> bool:
        return await node.handle.evaluate(f"el => el.hasAttribute('{SEEN_ATTRIBUTE}')")

    async def mark_seen(self, node: DomNodeRef) -> None:
        await node.handle.evaluate(f"el => el.setAttribute('{SEEN_ATTRIBUTE}', '1')")

    async def is_editable(self, node: DomNodeRef) -> bool:
        return await node.handle.evaluate(_IS_EDITABLE_JS)

    async def input_text(self, node: DomNodeRef) -> str:
        return await node.handle.evaluate("el => el.isContentEditable ? el.innerText : el.value")

    async def focus(self, node: DomNodeRef) -> None:
        await node.handle.focus()

    async def clear_input(self, node: DomNodeRef) -> None:
        await node.handle.click()
        await self.page.keyboard.press("ControlOrMeta+A")
        await self.page.keyboard.press("Backspace")

    async def insert_text(self, text: str) -> None:
        await self.page.keyboard.insert_text(text)

    async def press(self, key: str) -> None:
        await self.page.keyboard.press(key)

    async def click(self, node: DomNodeRef) -> None:
        await node.handle.click()

    async def scroll_to_end(self, node: DomNodeRef) -> None:
        await node.handle.evaluate("el => { el.scrollTop = el.scrollHeight; }")

    async def wait_for_timeout(self, ms: float) -> None:
        await self.page.wait_for_timeout(ms)

    async def _dispose(self, node: DomNodeRef) -> None:
        try:
            await node.handle.dispose()
        except PlaywrightError as e:
            logger.debug(f"Handle already gone on dispose: {e}")

    def on_navigate(self, callback: Callable[[], None]) -> None:
        def _handler(frame):
            if frame.parent_frame is None:
                callback()

        self.page.on("framenavigated", _handler)

    def on_console_message(self, callback: Callable[[str], None]) -> None:
        self.page.on("console", lambda message: callback(message.text))
