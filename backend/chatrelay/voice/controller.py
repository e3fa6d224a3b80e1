"""Voice mode: a continuous capture -> transcribe -> reply -> speak loop.

State machine::

    IDLE -> LISTENING -> TRANSCRIBING -> AWAITING_REPLY -> SPEAKING -> LISTENING ...
                              |   \\                                      ^
                              |    +-- empty transcript -- cooldown -----+
                              +-- error -> ERROR -- cooldown ------------+

    any state -- close() --> IDLE

The microphone is held only while LISTENING and is released on every way
out of it. Capture and playback never overlap: playback is stopped before
the microphone opens, and the capture handle is closed before speaking.

Network calls run as shielded tasks. Closing the controller tears down the
local audio resources at once; calls already in flight keep running in the
background and their outcome is only logged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, TypeVar

from chatrelay.relay.tasks import BackgroundTaskRegistry
from chatrelay.utils.intent import detect_search_intent

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_COOLDOWN_SECONDS = 2.0
DEFAULT_TITLE_CHECK_DELAY_SECONDS = 3.0
METER_INTERVAL_SECONDS = 0.05


class VoiceState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    AWAITING_REPLY = "awaiting_reply"
    SPEAKING = "speaking"
    ERROR = "error"


class MicrophoneUnavailableError(RuntimeError):
    """Microphone missing or permission denied."""


# ----------------------------------------------------------------------
# Collaborators
# ----------------------------------------------------------------------


class CaptureHandle(Protocol):
    """An active microphone recording."""

    mime_type: str

    async def wait_ended(self) -> None:
        """Resolve when the device stops on its own (silence, max length)."""

    def read_blob(self) -> bytes:
        """Everything recorded so far as one encoded blob."""

    def level(self) -> float:
        """Current input level in ``[0, 1]``."""

    def close(self) -> None:
        """Stop the underlying hardware tracks. Idempotent."""


class Microphone(Protocol):
    async def open(self) -> CaptureHandle: ...


class AudioPlayer(Protocol):
    async def play(self, audio: bytes, mime_type: str) -> None:
        """Play to completion, or return early once ``stop()`` is called."""

    def stop(self) -> None: ...


@dataclass(frozen=True)
class ChatReply:
    chat_id: str
    is_new_chat: bool
    text: str


@dataclass(frozen=True)
class SpeechAudio:
    audio: bytes
    mime_type: str


class VoiceBackend(Protocol):
    async def transcribe(self, audio: bytes, mime_type: str) -> str: ...

    async def reply(
        self, text: str, chat_id: Optional[str] = None, *, use_web_search: bool = False
    ) -> ChatReply: ...

    async def synthesize(self, text: str, voice: Optional[str]) -> SpeechAudio: ...

    async def fetch_title(self, chat_id: str) -> Optional[str]: ...


# ----------------------------------------------------------------------
# Session
# ----------------------------------------------------------------------


@dataclass
class VoiceSession:
    """Everything a single voice mode session holds. Never persisted."""

    player: AudioPlayer
    chat_id: Optional[str] = None
    state: VoiceState = VoiceState.IDLE
    status: str = ""
    capture: Optional[CaptureHandle] = None
    meter_task: Optional[asyncio.Task[Any]] = None
    playing: bool = False
    last_transcript: str = ""
    last_reply: str = ""
    _torn_down: bool = field(default=False, repr=False)

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    def stop_meter(self) -> None:
        if self.meter_task is not None:
            self.meter_task.cancel()
            self.meter_task = None

    def release_capture(self) -> None:
        self.stop_meter()
        if self.capture is not None:
            handle, self.capture = self.capture, None
            handle.close()

    def stop_playback(self) -> None:
        """The one way to stop audio output; called before any new playback."""
        if self.playing:
            self.playing = False
            self.player.stop()

    def teardown(self) -> bool:
        """Release every audio resource. Runs once; later calls return False."""
        if self._torn_down:
            return False
        self._torn_down = True
        self.release_capture()
        self.stop_playback()
        return True


# ----------------------------------------------------------------------
# Controller
# ----------------------------------------------------------------------


class VoiceTurnController:
    """Drives voice mode until ``close()`` is called.

    Usage::

        async with VoiceTurnController(client, microphone, player) as voice:
            ...                      # loop runs in the background
            voice.stop_listening()   # end the current utterance early
    """

    def __init__(
        self,
        backend: VoiceBackend,
        microphone: Microphone,
        player: AudioPlayer,
        *,
        voice: Optional[str] = None,
        chat_id: Optional[str] = None,
        cooldown: float = DEFAULT_COOLDOWN_SECONDS,
        title_check_delay: float = DEFAULT_TITLE_CHECK_DELAY_SECONDS,
        on_state: Optional[Callable[[VoiceState, str], None]] = None,
        on_transcript: Optional[Callable[[str], None]] = None,
        on_reply: Optional[Callable[[ChatReply], None]] = None,
        on_title: Optional[Callable[[str, str], None]] = None,
        on_level: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._backend = backend
        self._microphone = microphone
        self._voice = voice
        self._cooldown = cooldown
        self._title_check_delay = title_check_delay
        self._on_state = on_state
        self._on_transcript = on_transcript
        self._on_reply = on_reply
        self._on_title = on_title
        self._on_level = on_level

        self.session = VoiceSession(player=player, chat_id=chat_id)
        self._stop_capture = asyncio.Event()
        self._loop_task: Optional[asyncio.Task[None]] = None
        self._in_flight: set[asyncio.Task[Any]] = set()
        self._title_checks = BackgroundTaskRegistry()
        self._closed = False

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> VoiceState:
        return self.session.state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Open voice mode (or retry after a microphone failure)."""
        if self._closed:
            raise RuntimeError("Voice controller is closed")
        if self.running:
            return
        self._loop_task = asyncio.create_task(self._run(), name="voice-loop")

    retry = start

    def stop_listening(self) -> None:
        """End the current capture and send it for transcription."""
        self._stop_capture.set()

    def close(self) -> None:
        """Leave voice mode immediately. Safe to call any number of times."""
        if self._closed:
            return
        self._closed = True
        self.session.teardown()
        task = self._loop_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._set_state(VoiceState.IDLE, "")
        logger.info("Voice mode closed")

    async def aclose(self) -> None:
        """``close()`` and wait for the loop to unwind."""
        self.close()
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)
        await self._title_checks.cancel_all()

    async def wait(self) -> None:
        """Wait until the loop stops (closed or microphone failure)."""
        if self._loop_task is not None:
            await asyncio.gather(self._loop_task, return_exceptions=True)

    async def __aenter__(self) -> "VoiceTurnController":
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        try:
            while not self._closed:
                try:
                    spoke = await self._turn()
                except MicrophoneUnavailableError as exc:
                    logger.warning("Microphone unavailable: %s", exc)
                    self._set_state(VoiceState.ERROR, "Microphone access denied")
                    return
                except Exception as exc:
                    logger.warning("Voice turn failed: %s", exc)
                    self._set_state(VoiceState.ERROR, "Error processing audio")
                    await asyncio.sleep(self._cooldown)
                    continue

                if not spoke:
                    await asyncio.sleep(self._cooldown)
        finally:
            self.session.release_capture()
            if self._closed:
                self._set_state(VoiceState.IDLE, "")

    async def _turn(self) -> bool:
        """Run one capture -> speak cycle. False when nothing was said."""
        # close() called from a callback runs on this task and does not cancel it
        audio, mime_type = await self._listen()
        if self._closed:
            return True

        self._set_state(VoiceState.TRANSCRIBING, "Transcribing...")
        transcript = (await self._call(self._backend.transcribe(audio, mime_type))).strip()
        self.session.last_transcript = transcript
        if self._closed:
            return True
        if not transcript:
            self._set_state(VoiceState.TRANSCRIBING, "No speech detected")
            return False
        if self._on_transcript:
            self._on_transcript(transcript)

        self._set_state(VoiceState.AWAITING_REPLY, "Thinking...")
        reply = await self._call(
            self._backend.reply(
                transcript,
                self.session.chat_id,
                use_web_search=detect_search_intent(transcript),
            )
        )
        self._record_reply(reply)
        if self._closed or not reply.text.strip():
            return True

        self._set_state(VoiceState.SPEAKING, "Speaking...")
        speech = await self._call(self._backend.synthesize(reply.text, self._voice))
        if self._closed:
            return True
        await self._speak(speech)
        return True

    async def _listen(self) -> tuple[bytes, str]:
        self.session.stop_playback()
        self._stop_capture.clear()

        try:
            handle = await self._microphone.open()
        except MicrophoneUnavailableError:
            raise
        except OSError as exc:
            raise MicrophoneUnavailableError(str(exc)) from exc

        self.session.capture = handle
        try:
            if self._closed:
                return b"", handle.mime_type
            self._set_state(VoiceState.LISTENING, "Listening...")
            self._start_meter(handle)
            await self._wait_for_capture_end(handle)
            return handle.read_blob(), handle.mime_type
        finally:
            self.session.release_capture()

    async def _wait_for_capture_end(self, handle: CaptureHandle) -> None:
        requested = asyncio.ensure_future(self._stop_capture.wait())
        ended = asyncio.ensure_future(handle.wait_ended())
        try:
            await asyncio.wait({requested, ended}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            requested.cancel()
            ended.cancel()
        if ended.done() and not ended.cancelled() and ended.exception() is not None:
            raise ended.exception()

    async def _speak(self, speech: SpeechAudio) -> None:
        self.session.stop_playback()
        self.session.playing = True
        try:
            await self.session.player.play(speech.audio, speech.mime_type)
        finally:
            self.session.playing = False

    def _record_reply(self, reply: ChatReply) -> None:
        self.session.last_reply = reply.text
        if reply.chat_id:
            if reply.is_new_chat and reply.chat_id != self.session.chat_id:
                self._title_checks.spawn(
                    self._check_title(reply.chat_id), name=f"title-check-{reply.chat_id}"
                )
            self.session.chat_id = reply.chat_id
        if self._on_reply:
            self._on_reply(reply)

    async def _check_title(self, chat_id: str) -> None:
        # One delayed look, not a poll: the title may simply not be ready yet.
        await asyncio.sleep(self._title_check_delay)
        title = await self._backend.fetch_title(chat_id)
        if title and self._on_title:
            self._on_title(chat_id, title)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _call(self, coro: Awaitable[T]) -> T:
        task = asyncio.ensure_future(coro)
        self._in_flight.add(task)
        task.add_done_callback(self._settle)
        return await asyncio.shield(task)

    def _settle(self, task: asyncio.Task[Any]) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None and self._closed:
            logger.info("Voice request finished after close: %s", exc)

    def _start_meter(self, handle: CaptureHandle) -> None:
        if self._on_level is None:
            return
        self.session.meter_task = asyncio.create_task(self._meter(handle))

    async def _meter(self, handle: CaptureHandle) -> None:
        while True:
            self._on_level(handle.level())
            await asyncio.sleep(METER_INTERVAL_SECONDS)

    def _set_state(self, state: VoiceState, status: str) -> None:
        if self.session.state == state and self.session.status == status:
            return
        self.session.state = state
        self.session.status = status
        logger.debug("Voice state -> %s (%s)", state.value, status)
        if self._on_state:
            self._on_state(state, status)
