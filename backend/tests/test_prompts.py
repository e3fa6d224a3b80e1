"""Tests for title prompt construction and clean-up."""

import pytest

from chatrelay.agent.prompts import build_title_prompt, clean_title


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Planning a Trip to Kyoto", "Planning a Trip to Kyoto"),
        ('  "Planning a Trip"  \n', "Planning a Trip"),
        ("'Quoted'", "Quoted"),
        ("A" * 80, "A" * 60),
    ],
)
def test_clean_title(raw: str, expected: str) -> None:
    assert clean_title(raw, "unused message") == expected


def test_clean_title_falls_back_to_message() -> None:
    message = "How do I configure a reverse proxy for my homelab?"
    assert clean_title('  ""  ', message) == message[:30]


def test_title_prompt_clips_long_messages() -> None:
    prompt = build_title_prompt("word " * 100)
    assert ("word " * 40)[:200] in prompt
    assert "word " * 41 not in prompt
