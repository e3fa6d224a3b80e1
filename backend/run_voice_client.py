"""Standalone script to run voice mode against a running chat relay server.

Start the API first (``uvicorn chatrelay.main:app``), then:
    python backend/run_voice_client.py --url http://localhost:8000 --voice Maple

Speak after "Listening..."; a pause ends the utterance. Ctrl+C leaves voice mode.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).resolve().parent
sys.path.insert(0, str(backend_dir))

from chatrelay.voice.client import VoiceApiClient
from chatrelay.voice.controller import (
    DEFAULT_COOLDOWN_SECONDS,
    VoiceState,
    VoiceTurnController,
)
from chatrelay.voice.devices import SoundDeviceMicrophone, SoundDevicePlayer
from chatrelay.voice.voices import APP_VOICES

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Voice mode for the chat relay")
    parser.add_argument("--url", default="http://localhost:8000", help="API base URL")
    parser.add_argument("--voice", default="Maple", help=f"One of {', '.join(APP_VOICES)}")
    parser.add_argument("--user", default=None, help="User id forwarded as X-User-Id")
    parser.add_argument("--chat", default=None, help="Continue an existing chat id")
    parser.add_argument(
        "--cooldown",
        type=float,
        default=DEFAULT_COOLDOWN_SECONDS,
        help="Seconds to wait after an empty or failed turn",
    )
    return parser.parse_args()


def _print_state(state: VoiceState, status: str) -> None:
    print(f"[{state.value}] {status}")


async def main() -> None:
    """Run voice mode until interrupted or the microphone is unavailable."""
    args = _parse_args()

    async with VoiceApiClient(args.url, user_id=args.user) as client:
        controller = VoiceTurnController(
            client,
            SoundDeviceMicrophone(),
            SoundDevicePlayer(),
            voice=args.voice,
            chat_id=args.chat,
            cooldown=args.cooldown,
            on_state=_print_state,
            on_transcript=lambda text: print(f'You: "{text}"'),
            on_reply=lambda reply: print(f"Assistant: {reply.text}"),
            on_title=lambda chat_id, title: print(f"Chat {chat_id}: {title}"),
        )
        try:
            controller.start()
            await controller.wait()
        finally:
            await controller.aclose()
            logger.info("Voice mode shut down cleanly")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received interrupt signal. Shutting down...")
