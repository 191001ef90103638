from __future__ import annotations

import pytest

from tatekumi.width import convert_width, numeral_to_kanji


def test_numeral_to_kanji_is_digit_by_digit() -> None:
    # No place-value units: 123 is spelled 一二三, not 百二十三.
    assert numeral_to_kanji("123") == "一二三"
    assert numeral_to_kanji("10000") == "一〇〇〇〇"


def test_numeral_to_kanji_drops_leading_zeros_and_accepts_fullwidth() -> None:
    assert numeral_to_kanji("007") == "七"
    assert numeral_to_kanji("２０２４") == "二〇二四"


@pytest.mark.parametrize("value", ["", "  ", "12a", "1.5", "-3"])
def test_numeral_to_kanji_rejects_non_numerals(value: str) -> None:
    with pytest.raises(ValueError):
        numeral_to_kanji(value)


def test_digits_and_letters_round_trip() -> None:
    text = "Chapter 42 ABCxyz 0123456789"
    wide_digits = convert_width(text, "numbers", "fullwidth")
    assert "４２" in wide_digits
    assert convert_width(wide_digits, "numbers", "halfwidth") == text

    wide_letters = convert_width(text, "alphabet", "fullwidth")
    assert wide_letters.startswith("Ｃｈａｐｔｅｒ")
    assert convert_width(wide_letters, "alphabet", "halfwidth") == text


def test_targets_leave_other_characters_alone() -> None:
    assert convert_width("第1話A!", "numbers", "fullwidth") == "第１話A!"
    assert convert_width("第1話A!", "alphabet", "fullwidth") == "第1話Ａ!"
    assert convert_width("第1話A!", "symbols", "fullwidth") == "第1話A！"


def test_symbol_tables_are_not_inverses() -> None:
    assert convert_width('"', "symbols", "fullwidth") == "”"
    # Both curly quotes fold back onto the ASCII quote.
    assert convert_width("“”", "symbols", "halfwidth") == '""'
    assert convert_width("〜", "symbols", "halfwidth") == "~"
    assert convert_width("~", "symbols", "fullwidth") == "～"


def test_unknown_target_or_direction_raises() -> None:
    with pytest.raises(ValueError):
        convert_width("1", "kana", "fullwidth")
    with pytest.raises(ValueError):
        convert_width("1", "numbers", "sideways")
