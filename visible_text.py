# visible_text.py
"""
Visible-text extraction over a DOM subtree.

innerText alone over-includes screen-reader-only helper text (copy buttons,
"Gemini said", a11y labels). Those nodes are laid out with a near-zero box,
so they can be found by geometry and cut out, at any depth.
"""
import re
from typing import Set

from dom_page import DomNodeRef, DomPage, Path, is_visually_hidden

BLOCK_TAGS = {
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6",
    "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tbody", "thead", "tr", "ul",
}

_SPACES = re.compile(r"[ \t\f\v\r]+")
_BLANK_RUNS = re.compile(r"\n{3,}")


async def extract_visible_text(page: DomPage, root: DomNodeRef) -> str:
    """Return the text a human sees under ``root``, trimmed."""
    boxes = await page.layout_boxes(root)
    hidden = {path for path, box in boxes if is_visually_hidden(box)}
    if not hidden:
        return (await page.rendered_text(root)).strip()

    # Every ancestor of a hidden node, root included as ().
    tainted = {path[:depth] for path in hidden for depth in range(len(path))}
    text = await _collect(page, root, (), hidden, tainted)
    return _tidy(text)


async def _collect(page: DomPage, node: DomNodeRef, path: Path, hidden: Set[Path], tainted: Set[Path]) -> str:
    if path in hidden:
        return ""
    if path not in tainted:
        return await page.rendered_text(node)

    out = ""
    index = 0
    for child in await page.child_nodes(node):
        if isinstance(child, str):
            out += _SPACES.sub(" ", child.replace("\n", " "))
            continue
        try:
            piece = await _collect(page, child, path + (index,), hidden, tainted)
            if piece and await page.tag_name(child) in BLOCK_TAGS:
                # Blocks start and end their own line.
                head = out.rstrip(" ")
                if head and not head.endswith("\n"):
                    out += "\n"
                if not piece.endswith("\n"):
                    piece += "\n"
            out += piece
        finally:
            await page.release(child)
        index += 1
    return out


def _tidy(text: str) -> str:
    lines = [line.strip() for line in text.split("\n")]
    return _BLANK_RUNS.sub("\n\n", "\n".join(lines)).strip()
