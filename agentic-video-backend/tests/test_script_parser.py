# agentic-video-backend/tests/test_script_parser.py

from conftest import SAMPLE_SCRIPT
from script_parser import extract_keywords, parse_script


def test_stage_directions_are_removed_from_narration():
    parsed = parse_script(SAMPLE_SCRIPT)

    assert parsed.directions == ["close-up of a laptop editing timeline", "drone shot over a city at sunrise"]
    assert "[" not in parsed.narration
    assert "drone shot" not in parsed.narration
    assert parsed.narration.startswith("Welcome back!")
    assert parsed.narration.endswith("match its mood.")


def test_inline_brackets_and_labels():
    text = "Visual: rocket on the pad\nLiftoff [smoke fills the frame] happens at dawn.\n"
    parsed = parse_script(text)

    assert parsed.directions == ["rocket on the pad", "smoke fills the frame"]
    assert parsed.narration == "Liftoff happens at dawn."


def test_script_of_only_directions_has_no_narration():
    parsed = parse_script("[intro music]\n(Scene: black screen)")
    assert parsed.narration == ""
    assert len(parsed.directions) == 2


def test_keywords_rank_by_frequency_then_order():
    text = "Rockets and engines. Rockets need fuel. Engines burn fuel. Rockets fly."
    assert extract_keywords(text, limit=3) == ["rockets", "engines", "fuel"]


def test_keywords_skip_stopwords():
    assert extract_keywords("The and with your channel") == []
