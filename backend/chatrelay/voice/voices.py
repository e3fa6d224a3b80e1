"""App voice names and the Gemini prebuilt voices behind them."""

GEMINI_VOICE_IDS: dict[str, str] = {
    "Maple": "Puck",  # soft, playful
    "Juniper": "Charon",  # deeper, serious
    "Breeze": "Kore",  # calm
    "Cove": "Fenrir",  # intense
    "Ember": "Aoede",  # expressive
    "Sol": "Puck",
}

APP_VOICES = list(GEMINI_VOICE_IDS)


def resolve_voice(name: str | None) -> str | None:
    """Map an app voice name to a Gemini voice; other names pass through."""
    if not name:
        return None
    return GEMINI_VOICE_IDS.get(name, name)
