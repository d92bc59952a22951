#!/usr/bin/env python3
# agora.py
"""
Run a debate between two AI chat web UIs.

Usage: python agora.py "<topic>" [--rounds N] [--agents claude gemini] [--locale zh] [--cdp-url URL]
"""
import argparse
import asyncio
import sys
from datetime import datetime

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from agent_bridge import AgentBridge
from bridge_errors import BridgeError
from browser_launcher import BrowserLauncher
from debate_arena import DebateArena
from dom_page import PlaywrightDomPage
from logging_config import log_exception, setup_logging
from settings import get_profile, load_settings


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Debate between two AI chat web interfaces")
    parser.add_argument("topic", nargs="?", help="Debate topic")
    parser.add_argument("--rounds", type=int, help="Number of debate rounds")
    parser.add_argument("--agents", nargs=2, metavar=("A", "B"), help="Agent keys, e.g. claude gemini")
    parser.add_argument("--locale", help="Prompt language (en or zh)")
    parser.add_argument("--cdp-url", help="Attach to a running Chrome instead of launching one")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    settings = load_settings(
        topic=args.topic,
        rounds=args.rounds,
        agents=tuple(args.agents) if args.agents else None,
        locale=args.locale,
        cdp_url=args.cdp_url,
    )
    logger = setup_logging(log_dir=str(settings.log_dir))
    logger.info("Configuration loaded:")
    logger.info(f"  Topic: {settings.topic}")
    logger.info(f"  Agents: {settings.agents[0]} vs {settings.agents[1]}")
    logger.info(f"  Rounds: {settings.rounds}")
    logger.info(f"  Locale: {settings.locale}")

    try:
        profiles = [get_profile(key) for key in settings.agents]
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 2

    async with async_playwright() as p:
        launcher = BrowserLauncher(settings)
        arena = None
        try:
            pages = await launcher.open_pages(p, profiles)

            logger.info("─" * 50)
            logger.info("Please log in to both services if needed.")
            logger.info("Press Enter when ready to start the debate...")
            logger.info("─" * 50)
            await asyncio.to_thread(sys.stdin.readline)

            bridges = [
                AgentBridge(PlaywrightDomPage(page), profile, settings.timings, settings.locale)
                for page, profile in zip(pages, profiles)
            ]
            transcript = settings.log_dir / f"debate-{datetime.now().strftime('%Y%m%d-%H%M%S')}.jsonl"
            arena = DebateArena(
                bridges[0],
                bridges[1],
                transcript_path=transcript,
                locale=settings.locale,
                max_round_retries=settings.max_round_retries,
            )
            await arena.run(settings.topic, settings.rounds)
            logger.info(f"Transcript saved to: {transcript}")
            return 0
        except (BridgeError, PlaywrightError) as e:
            log_exception(logger, e, "debate")
            return 1
        finally:
            if arena is not None:
                await arena.close()
            await launcher.close()


def main(argv=None) -> int:
    args = parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("⚠️ Interrupted by user (Ctrl+C)")
        return 130


if __name__ == "__main__":
    sys.exit(main())
