# browser_launcher.py
"""
Browser lifecycle for the debate: one persistent Chromium profile per agent
(so logins survive restarts), windows side by side, or an existing Chrome
reached over CDP.
"""
import logging
import time
from typing import List, Optional

import httpx
from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    TimeoutError as PlaywrightTimeoutError,
)

from logging_config import log_api_call
from settings import AgentProfile, ArenaSettings

logger = logging.getLogger("agora.browser")

WINDOW_GAP = 20


async def check_cdp_endpoint(cdp_url: str, timeout: float = 5.0) -> dict:
    """GET /json/version on a remote-debugging endpoint; raises if it is not up."""
    url = f"{cdp_url.rstrip('/')}/json/version"
    start_time = time.time()
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.get(url)
    log_api_call(logger, "GET", url, response.status_code, time.time() - start_time)
    response.raise_for_status()
    data = response.json()
    logger.info(f"✓ CDP endpoint up: {data.get('Browser', 'unknown browser')}")
    return data


class BrowserLauncher:
    def __init__(self, settings: ArenaSettings):
        self.settings = settings
        self.contexts: List[BrowserContext] = []
        self.browser: Optional[Browser] = None

    async def open_pages(self, playwright: Playwright, profiles: List[AgentProfile]) -> List[Page]:
        if self.settings.cdp_url:
            pages = await self._connect_over_cdp(playwright, profiles)
        else:
            pages = [
                await self._launch_profile(playwright, profile, slot)
                for slot, profile in enumerate(profiles)
            ]

        for profile, page in zip(profiles, pages):
            logger.info(f"➡️ Opening {profile.name}...")
            await page.goto(profile.url, wait_until="domcontentloaded")
            try:
                await page.wait_for_load_state("networkidle", timeout=30000)
            except PlaywrightTimeoutError:
                logger.info(f"ℹ️ {profile.name} network still active, continuing")
        return pages

    async def _launch_profile(self, playwright: Playwright, profile: AgentProfile, slot: int) -> Page:
        user_data_dir = profile.profile_dir(self.settings.profiles_dir)
        user_data_dir.mkdir(parents=True, exist_ok=True)

        width, height = self.settings.window_width, self.settings.window_height
        context = await playwright.chromium.launch_persistent_context(
            user_data_dir=str(user_data_dir.resolve()),
            headless=False,
            no_viewport=True,
            args=[
                f"--window-size={width},{height}",
                f"--window-position={slot * (width + WINDOW_GAP)},0",
                "--disable-blink-features=AutomationControlled",
            ],
        )
        self.contexts.append(context)
        logger.debug(f"Launched {profile.name} with profile {user_data_dir}")
        return context.pages[0] if context.pages else await context.new_page()

    async def _connect_over_cdp(self, playwright: Playwright, profiles: List[AgentProfile]) -> List[Page]:
        await check_cdp_endpoint(self.settings.cdp_url)
        self.browser = await playwright.chromium.connect_over_cdp(self.settings.cdp_url)
        context = self.browser.contexts[0] if self.browser.contexts else await self.browser.new_context()
        return [await context.new_page() for _ in profiles]

    async def close(self) -> None:
        for context in self.contexts:
            await context.close()
        self.contexts = []
        if self.browser is not None:
            await self.browser.close()
            self.browser = None
