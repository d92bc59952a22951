# fake_dom.py
"""
In-memory DomPage for tests.

FakeNode is a tiny element tree; FakePage serves it through the DomPage
interface on a virtual clock. wait_for_timeout() advances the clock and
fires whatever was scheduled with at(), so a whole round runs instantly.
FakeChatSite builds a chat page on top and plays queued replies on submit.
"""
import asyncio
from typing import Callable, List, Optional, Tuple, Union

from dom_page import SEEN_ATTRIBUTE, Box, DomNodeRef, DomPage, Path
from visible_text import BLOCK_TAGS


class FakeNode:
    def __init__(self, tag: str = "div", *items, width: float = 100, height: float = 20,
                 overflow: str = "visible", editable: bool = False, selectors=(),
                 label: Optional[str] = None, displayed: bool = True):
        self.tag = tag
        self.items: List[Union[str, "FakeNode"]] = []
        self.parent: Optional["FakeNode"] = None
        self.width = width
        self.height = height
        self.overflow = overflow
        self.editable = editable
        self.value = ""
        self.selectors = set(selectors)
        self.label = label
        self.displayed = displayed
        self.attrs = {}
        self.on_click: Optional[Callable[[], None]] = None
        for item in items:
            self.append(item)

    def append(self, item: Union[str, "FakeNode"]) -> Union[str, "FakeNode"]:
        if isinstance(item, FakeNode):
            item.parent = self
        self.items.append(item)
        return item

    def detach(self) -> "FakeNode":
        self.parent.items.remove(self)
        self.parent = None
        return self

    def set_text(self, text: str) -> None:
        self.items = [item for item in self.items if isinstance(item, FakeNode)] + [text]

    @property
    def elements(self) -> List["FakeNode"]:
        return [item for item in self.items if isinstance(item, FakeNode)]

    def inner_text(self) -> str:
        if not self.displayed:
            return ""
        if self.editable:
            return self.value
        out = ""
        for item in self.items:
            if isinstance(item, str):
                out += item
                continue
            text = item.inner_text()
            if text and item.tag in BLOCK_TAGS:
                if out and not out.endswith("\n"):
                    out += "\n"
                text += "\n"
            out += text
        return out.strip("\n")

    def walk(self):
        yield self
        for child in self.elements:
            yield from child.walk()

    def __repr__(self):
        return f"<FakeNode {self.tag} {self.inner_text()[:20]!r}>"


class FakePage(DomPage):
    def __init__(self, root: Optional[FakeNode] = None):
        self.root = root or FakeNode("body", width=1000, height=1000)
        self.now = 0.0
        self._events: List[Tuple[float, int, Callable[[], None]]] = []
        self._seq = 0
        self.focused: Optional[FakeNode] = None
        self.on_submit: Optional[Callable[[str], None]] = None
        self.issued = 0
        self.disposed = 0
        self.scrolled: List[FakeNode] = []
        self._navigate_callbacks = []
        self._console_callbacks = []

    # --- test helpers ---

    @property
    def outstanding(self) -> int:
        return self.issued - self.disposed

    def clock(self) -> float:
        return self.now / 1000

    def at(self, delay_ms: float, fn: Callable[[], None]) -> None:
        self._seq += 1
        self._events.append((self.now + delay_ms, self._seq, fn))

    def navigate(self) -> None:
        for callback in self._navigate_callbacks:
            callback()

    def console(self, text: str) -> None:
        for callback in self._console_callbacks:
            callback(text)

    def ref(self, node: FakeNode) -> DomNodeRef:
        self.issued += 1
        return DomNodeRef(node)

    def _attached(self, node: FakeNode) -> bool:
        while node is not None:
            if node is self.root:
                return True
            node = node.parent
        return False

    # --- queries ---

    async def body(self) -> DomNodeRef:
        return self.ref(self.root)

    async def query_all(self, selector: str) -> List[DomNodeRef]:
        return [self.ref(n) for n in self.root.walk() if selector in n.selectors]

    async def children(self, node: DomNodeRef) -> List[DomNodeRef]:
        return [self.ref(n) for n in node.handle.elements]

    async def child_nodes(self, node: DomNodeRef) -> List[Union[str, DomNodeRef]]:
        return [item if isinstance(item, str) else self.ref(item) for item in node.handle.items]

    async def parent(self, node: DomNodeRef) -> Optional[DomNodeRef]:
        parent = node.handle.parent
        return self.ref(parent) if parent is not None else None

    async def same_node(self, a: DomNodeRef, b: DomNodeRef) -> bool:
        return a.handle is b.handle

    async def tag_name(self, node: DomNodeRef) -> str:
        return node.handle.tag

    async def rendered_text(self, node: DomNodeRef) -> str:
        return node.handle.inner_text()

    async def box(self, node: DomNodeRef) -> Box:
        n = node.handle
        return Box(n.width, n.height) if n.displayed else Box(0, 0)

    async def layout_boxes(self, root: DomNodeRef) -> List[Tuple[Path, Box]]:
        out = []

        def walk(n: FakeNode, path: Path):
            for i, child in enumerate(n.elements):
                p = path + (i,)
                out.append((p, Box(child.width, child.height) if child.displayed else Box(0, 0)))
                walk(child, p)

        walk(root.handle, ())
        return out

    async def overflow_y(self, node: DomNodeRef) -> str:
        return node.handle.overflow

    async def is_connected(self, node: DomNodeRef) -> bool:
        return self._attached(node.handle)

    async def visible_control_labels(self) -> List[str]:
        labels = []
        for n in self.root.walk():
            if n.tag != "button" or not n.displayed:
                continue
            if n.label:
                labels.append(n.label)
            text = n.inner_text().strip()
            if text:
                labels.append(text)
        return labels

    # --- markers ---

    async def is_marked(self, node: DomNodeRef) -> bool:
        return SEEN_ATTRIBUTE in node.handle.attrs

    async def mark_seen(self, node: DomNodeRef) -> None:
        node.handle.attrs[SEEN_ATTRIBUTE] = "1"

    # --- input ---

    async def is_editable(self, node: DomNodeRef) -> bool:
        return node.handle.editable

    async def input_text(self, node: DomNodeRef) -> str:
        return node.handle.value

    async def focus(self, node: DomNodeRef) -> None:
        self.focused = node.handle

    async def clear_input(self, node: DomNodeRef) -> None:
        node.handle.value = ""

    async def insert_text(self, text: str) -> None:
        self.focused.value += text

    async def press(self, key: str) -> None:
        if key == "Shift+Enter":
            self.focused.value += "\n"
        elif key == "Enter" and self.on_submit is not None:
            self.on_submit(self.focused.value)

    async def click(self, node: DomNodeRef) -> None:
        if node.handle.on_click is not None:
            node.handle.on_click()

    async def scroll_to_end(self, node: DomNodeRef) -> None:
        self.scrolled.append(node.handle)

    # --- lifecycle ---

    async def wait_for_timeout(self, ms: float) -> None:
        self.now += ms
        while True:
            due = sorted(e for e in self._events if e[0] <= self.now)
            if not due:
                break
            event = due[0]
            self._events.remove(event)
            event[2]()
        await asyncio.sleep(0)

    async def _dispose(self, node: DomNodeRef) -> None:
        self.disposed += 1

    def on_navigate(self, callback: Callable[[], None]) -> None:
        self._navigate_callbacks.append(callback)

    def on_console_message(self, callback: Callable[[str], None]) -> None:
        self._console_callbacks.append(callback)


# =====================================
# CHAT SITE
# =====================================

class FakeChatSite:
    """
    A chat UI on a FakePage.

    flat:    main(scroll) > thread > [user, assistant, user, assistant, ...]
    wrapper: main(scroll) > [turn > [user, assistant], turn > [...], ...]
    """

    def __init__(self, layout: str = "flat", selector: str = "#composer"):
        self.layout = layout
        self.page = FakePage()
        body = self.page.root
        self.main = body.append(FakeNode("main", width=800, height=900, overflow="auto"))
        self.thread = self.main.append(FakeNode("div", width=800, height=800)) if layout == "flat" else None
        self.composer = body.append(FakeNode("div", width=600, height=40, editable=True, selectors={selector}))
        self.stop_button = body.append(FakeNode("button", label="Stop generating", displayed=False))
        self.submitted: List[str] = []
        self._replies = []
        self.page.on_submit = self._on_submit

    def queue_reply(self, chunks: List[str], first_delay_ms: float = 300, interval_ms: float = 200,
                    stop_button: bool = True) -> None:
        self._replies.append((list(chunks), first_delay_ms, interval_ms, stop_button))

    def _on_submit(self, text: str) -> None:
        self.submitted.append(text)
        self.composer.value = ""

        user = FakeNode("div", text)
        if self.layout == "flat":
            parent = self.thread
        else:
            parent = self.main.append(FakeNode("div", width=800, height=200))
        parent.append(user)

        if not self._replies:
            return
        chunks, first_delay, interval, stop_button = self._replies.pop(0)
        holder = {}

        def start():
            holder["node"] = parent.append(FakeNode("div", chunks[0]))
            if stop_button:
                self.stop_button.displayed = True

        self.page.at(first_delay, start)
        for i, chunk in enumerate(chunks[1:], start=1):
            self.page.at(first_delay + i * interval, lambda c=chunk: holder["node"].set_text(c))
        if stop_button:
            done_at = first_delay + len(chunks) * interval

            def stop():
                self.stop_button.displayed = False

            self.page.at(done_at, stop)
