"""Voice module - Gemini STT/TTS backends and the voice mode turn controller.

Only the controller is re-exported here so the voice client can be imported
without the server's settings.
"""

from .controller import VoiceSession, VoiceState, VoiceTurnController

__all__ = ["VoiceSession", "VoiceState", "VoiceTurnController"]
