from __future__ import annotations

from wa_socket.client.assumptions import expand_template, resolve_word, split_template
from wa_socket.protocol import Assumption, AssumptionValue


def _assumption(template, values, word=None, query=None) -> Assumption:
    return Assumption(
        template=template,
        values=[AssumptionValue(**v) for v in values],
        word=word,
        query=query,
    )


def test_split_template_keeps_chunk_count() -> None:
    chunks, tokens = split_template("Assuming ${desc} is ${word}")

    assert chunks == ["Assuming ", " is ", ""]
    assert tokens == ["${desc}", "${word}"]


def test_value_word_fills_word_placeholder() -> None:
    assumption = _assumption("Assuming ${desc} is ${word}", [{"desc": "x", "word": "a variable"}])

    assert expand_template(assumption, "x") == "Assuming x is a variable"


def test_desc_cursor_skips_description_already_in_template() -> None:
    assumption = _assumption(
        "Assuming a mathematical constant. Use ${desc} instead",
        [{"desc": "a mathematical constant"}, {"desc": "a movie"}],
    )

    assert expand_template(assumption, "pi") == "Assuming a mathematical constant. Use a movie instead"


def test_desc_placeholders_consume_values_in_order() -> None:
    assumption = _assumption(
        "Assuming ${desc}${separator}Use as ${desc}${separator}${desc}",
        [{"desc": "a unit"}, {"desc": "a word"}, {"desc": "a city"}],
    )

    assert expand_template(assumption, "m") == "Assuming a unit | Use as a word | a city"


def test_exhausted_values_append_nothing() -> None:
    assumption = _assumption("Use ${desc} or ${desc}", [{"desc": "one"}])

    assert expand_template(assumption, "q") == "Use one or "


def test_unknown_placeholder_passes_through() -> None:
    assumption = _assumption("Assuming ${desc1} is ${other}", [{"desc": "x"}])

    assert expand_template(assumption, "x") == "Assuming ${desc1} is ${other}"


def test_template_without_placeholders_is_unchanged() -> None:
    assumption = _assumption("Assuming metric units", [])

    assert expand_template(assumption, "5 km") == "Assuming metric units"


def test_word_sentinel_uses_first_description() -> None:
    assumption = _assumption("${word}", [{"desc": "a planet", "word": "ignored"}], word="AssumingWord")

    assert resolve_word(assumption, "mars") == "a planet"


def test_assumption_word_wins_over_value_word() -> None:
    assumption = _assumption("${word}", [{"word": "value word"}], word="pi")

    assert resolve_word(assumption, "pi day") == "pi"


def test_the_input_phrase_uses_query_text() -> None:
    assumption = _assumption("Assuming ${word} is a date", [{"desc": "d", "word": " the input "}])

    assert expand_template(assumption, "3/14") == "Assuming 3/14 is a date"


def test_word_falls_back_to_query() -> None:
    assumption = _assumption("Assuming ${word} is a city", [{"desc": "Paris"}])

    assert expand_template(assumption, "paris") == "Assuming paris is a city"


def test_assumption_query_field_takes_precedence_over_session_input() -> None:
    assumption = _assumption("Interpreting ${word}", [], query="paris france")

    assert expand_template(assumption, "paris") == "Interpreting paris france"
