"""Local audio devices for voice mode, backed by sounddevice.

``SoundDeviceMicrophone`` records 16 kHz mono PCM16 and hands the controller
a WAV blob. Recording stops on its own after trailing silence or a maximum
length. ``SoundDevicePlayer`` plays the synthesised reply (raw PCM16 as
returned by Gemini TTS, or WAV).
"""

from __future__ import annotations

import asyncio
import io
import logging
import re
import wave
from dataclasses import dataclass

import numpy as np
import sounddevice as sd

from chatrelay.voice.controller import MicrophoneUnavailableError

logger = logging.getLogger(__name__)

SAMPLE_RATE = 16000
DEFAULT_PLAYBACK_RATE = 24000
_RATE_PATTERN = re.compile(r"rate=(\d+)")


@dataclass
class CaptureConfig:
    sample_rate: int = SAMPLE_RATE
    max_seconds: float = 30.0
    silence_seconds: float = 1.2
    silence_threshold: float = 0.015
    device: int | str | None = None


def encode_wav(pcm16: np.ndarray, sample_rate: int) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm16.astype("<i2").tobytes())
    return buffer.getvalue()


def decode_audio(audio: bytes, mime_type: str) -> tuple[np.ndarray, int]:
    """Return int16 samples and sample rate for WAV or raw little-endian PCM16."""
    if audio[:4] == b"RIFF":
        with wave.open(io.BytesIO(audio), "rb") as wf:
            frames = wf.readframes(wf.getnframes())
            samples = np.frombuffer(frames, dtype="<i2")
            if wf.getnchannels() > 1:
                samples = samples.reshape(-1, wf.getnchannels())
            return samples, wf.getframerate()

    match = _RATE_PATTERN.search(mime_type or "")
    rate = int(match.group(1)) if match else DEFAULT_PLAYBACK_RATE
    return np.frombuffer(audio, dtype="<i2"), rate


class SoundDeviceCapture:
    """One microphone recording. Frames arrive on the PortAudio thread."""

    mime_type = "audio/wav"

    def __init__(self, config: CaptureConfig) -> None:
        self._config = config
        self._loop = asyncio.get_running_loop()
        self._ended = asyncio.Event()
        self._end_signalled = False
        self._frames: list[np.ndarray] = []
        self._samples = 0
        self._silent_samples = 0
        self._heard_speech = False
        self._level = 0.0
        self._closed = False
        self._stream = sd.InputStream(
            samplerate=config.sample_rate,
            channels=1,
            dtype="int16",
            device=config.device,
            callback=self._callback,
        )

    def start(self) -> None:
        self._stream.start()
        logger.debug("Microphone capture started (%d Hz)", self._config.sample_rate)

    def _callback(self, indata, frames, _time_info, status) -> None:
        if status:
            logger.debug("Capture status: %s", status)
        block = indata[:, 0].copy()
        self._frames.append(block)
        self._samples += frames

        rms = float(np.sqrt(np.mean((block.astype(np.float32) / 32768.0) ** 2)))
        self._level = min(1.0, rms * 10)
        if rms >= self._config.silence_threshold:
            self._heard_speech = True
            self._silent_samples = 0
        elif self._heard_speech:
            self._silent_samples += frames

        rate = self._config.sample_rate
        too_long = self._samples >= self._config.max_seconds * rate
        paused = self._heard_speech and self._silent_samples >= self._config.silence_seconds * rate
        if (too_long or paused) and not self._end_signalled:
            self._end_signalled = True
            self._loop.call_soon_threadsafe(self._ended.set)

    async def wait_ended(self) -> None:
        await self._ended.wait()

    def read_blob(self) -> bytes:
        frames = list(self._frames)
        pcm = np.concatenate(frames) if frames else np.zeros(0, dtype=np.int16)
        return encode_wav(pcm, self._config.sample_rate)

    def level(self) -> float:
        return self._level

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stream.stop()
        self._stream.close()
        logger.debug("Microphone capture released")


class SoundDeviceMicrophone:
    def __init__(self, config: CaptureConfig | None = None) -> None:
        self._config = config or CaptureConfig()

    async def open(self) -> SoundDeviceCapture:
        try:
            capture = SoundDeviceCapture(self._config)
        except sd.PortAudioError as exc:
            raise MicrophoneUnavailableError(str(exc)) from exc
        try:
            capture.start()
        except sd.PortAudioError as exc:
            capture.close()
            raise MicrophoneUnavailableError(str(exc)) from exc
        except Exception:
            capture.close()
            raise
        return capture


class SoundDevicePlayer:
    """Plays one clip at a time on the default output device."""

    def __init__(self, device: int | str | None = None) -> None:
        self._device = device

    async def play(self, audio: bytes, mime_type: str) -> None:
        samples, rate = decode_audio(audio, mime_type)
        if samples.size == 0:
            return
        sd.play(samples, samplerate=rate, device=self._device)
        # sd.wait() returns when playback ends or sd.stop() is called
        await asyncio.to_thread(sd.wait)

    def stop(self) -> None:
        sd.stop()
