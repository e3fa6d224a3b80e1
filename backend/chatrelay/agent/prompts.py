"""Prompts for the one-shot Gemini calls (titles and transcription)."""

TITLE_SOURCE_CHARS = 200
TITLE_MAX_LENGTH = 60
TITLE_FALLBACK_LENGTH = 30

TITLE_PROMPT = (
    "Generate a very short, descriptive title (3-6 words, no quotes, no special "
    "characters) for a chat conversation that starts with this message: "
    '"{message}". Reply with ONLY the title, nothing else.'
)

TRANSCRIBE_PROMPT = (
    "Transcribe the following audio exactly as spoken. Do not add any commentary."
)


def build_title_prompt(message: str) -> str:
    return TITLE_PROMPT.format(message=message[:TITLE_SOURCE_CHARS])


def clean_title(raw: str, message: str) -> str:
    """Normalise a model-written title.

    Strips whitespace and one pair of surrounding quotes, caps the length and
    falls back to the start of the message when the model returned nothing.
    """
    title = raw.strip()
    if title[:1] in ("'", '"'):
        title = title[1:]
    if title[-1:] in ("'", '"'):
        title = title[:-1]
    title = title.strip()[:TITLE_MAX_LENGTH]
    return title or message[:TITLE_FALLBACK_LENGTH]
