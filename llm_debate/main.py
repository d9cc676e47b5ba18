"""
Main orchestrator: wires all components together and runs the async event loop.
Entry point: python -m llm_debate
"""

import asyncio
import logging
import signal

from .config import AppConfig
from .debate.controller import TurnController
from .presentation.server import DebateServer
from .providers.factory import create_providers, parse_speaker
from .shared.event_bus import EventBus

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("llm_debate")


async def main():
    """Bootstrap and run all system components."""
    config = AppConfig.from_env()
    bus = EventBus()

    logger.info("=" * 60)
    logger.info("  LLM Debate: starting up")
    logger.info("=" * 60)

    # ── 1. Initialize providers ────────────────────────────────
    providers = create_providers(config)
    for provider in providers.values():
        await provider.initialize()
    if not config.openai.api_key:
        logger.warning("OPENAI_API_KEY is not set, OpenAI turns will fail")

    # ── 2. Turn controller ─────────────────────────────────────
    controller = TurnController(
        providers,
        bus,
        max_rounds=config.debate.max_rounds,
        turn_delay=config.debate.turn_delay,
        first_speaker=parse_speaker(config.debate.first_speaker),
    )

    # ── 3. Web server (subscribes before the bus starts) ───────
    server = DebateServer(config.server, bus, controller, providers)

    # ── 4. Start the event bus ─────────────────────────────────
    await bus.start()

    # ── 5. Graceful shutdown handling ──────────────────────────
    shutdown_event = asyncio.Event()

    def _signal_handler():
        logger.info("Shutdown signal received")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            pass  # Windows

    logger.info("🚀 Open http://localhost:%d to watch the debate", config.server.port)

    server_task = asyncio.create_task(server.start())
    stop_task = asyncio.create_task(shutdown_event.wait())
    try:
        await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        pass
    finally:
        logger.info("Shutting down...")
        for task in (server_task, stop_task):
            task.cancel()
        await asyncio.gather(server_task, stop_task, return_exceptions=True)
        await controller.close()
        await server.stop()
        await bus.stop()
        for provider in providers.values():
            await provider.close()
        logger.info("Bye! 👋")


if __name__ == "__main__":
    asyncio.run(main())
