# chat_input.py
"""Locating, filling and submitting a chat composer."""
import logging
from typing import List, Optional

from dom_page import DomNodeRef, DomPage, held_nodes
from settings import AgentProfile

logger = logging.getLogger("agora.input")

SOFT_NEWLINE_KEY = "Shift+Enter"


async def find_input(page: DomPage, selectors: List[str]) -> Optional[DomNodeRef]:
    """First visible, editable match, trying ``selectors`` in order."""
    for selector in selectors:
        refs = await page.query_all(selector)
        async with held_nodes(page, refs) as held:
            for ref in refs:
                if (await page.box(ref)).area <= 0:
                    continue
                if not await page.is_editable(ref):
                    continue
                held.remove(ref)
                logger.debug(f"Found input with selector: {selector}")
                return ref
    return None


async def inject_text(page: DomPage, node: DomNodeRef, text: str) -> None:
    """Replace the input's content with ``text``; line breaks become soft newlines, not submits."""
    await page.focus(node)
    await page.clear_input(node)
    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    for i, line in enumerate(lines):
        if i:
            await page.press(SOFT_NEWLINE_KEY)
        if line:
            await page.insert_text(line)


async def submit(page: DomPage, profile: AgentProfile, node: DomNodeRef) -> None:
    if profile.submit == "button" and profile.submit_selector:
        buttons = await page.query_all(profile.submit_selector)
        async with held_nodes(page, buttons):
            for button in buttons:
                if (await page.box(button)).area > 0:
                    await page.click(button)
                    return
        logger.warning(f"⚠️ {profile.name} send button not visible; pressing Enter in input.")

    await page.focus(node)
    await page.press("Enter")
