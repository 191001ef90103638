from __future__ import annotations

__all__ = [
    "WIDTH_TARGETS",
    "WIDTH_DIRECTIONS",
    "SYMBOL_FULLWIDTH_MAP",
    "SYMBOL_HALFWIDTH_MAP",
    "KANJI_DIGITS",
    "convert_width",
    "numeral_to_kanji",
]

WIDTH_TARGETS = ("numbers", "alphabet", "symbols")
WIDTH_DIRECTIONS = ("fullwidth", "halfwidth")

# Offset between ASCII letters/digits and their full-width forms (U+FF10 etc).
_FULLWIDTH_OFFSET = 0xFEE0

SYMBOL_FULLWIDTH_MAP: dict[str, str] = {
    "!": "！", '"': "”", "#": "＃", "$": "＄", "%": "％", "&": "＆",
    "'": "’", "(": "（", ")": "）", "*": "＊", "+": "＋", ",": "，",
    "-": "－", ".": "．", "/": "／", ":": "：", ";": "；", "<": "＜",
    "=": "＝", ">": "＞", "?": "？", "@": "＠", "[": "［", "\\": "＼",
    "]": "］", "^": "＾", "_": "＿", "`": "｀", "{": "｛", "|": "｜",
    "}": "｝", "~": "～", " ": "　",
}

# Kept separate from the forward table: several full-width glyphs fold onto the
# same ASCII symbol, so the two tables are not inverses of each other.
SYMBOL_HALFWIDTH_MAP: dict[str, str] = {
    "！": "!", "”": '"', "“": '"', "＂": '"', "＃": "#", "＄": "$",
    "％": "%", "＆": "&", "’": "'", "‘": "'", "＇": "'", "（": "(",
    "）": ")", "＊": "*", "＋": "+", "，": ",", "－": "-", "．": ".",
    "／": "/", "：": ":", "；": ";", "＜": "<", "＝": "=", "＞": ">",
    "？": "?", "＠": "@", "［": "[", "＼": "\\", "￥": "\\", "］": "]",
    "＾": "^", "＿": "_", "｀": "`", "｛": "{", "｜": "|", "｝": "}",
    "～": "~", "〜": "~", "　": " ",
}

KANJI_DIGITS = ("〇", "一", "二", "三", "四", "五", "六", "七", "八", "九")


def _is_halfwidth_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_halfwidth_alpha(ch: str) -> bool:
    return "A" <= ch <= "Z" or "a" <= ch <= "z"


def _is_fullwidth_digit(ch: str) -> bool:
    return "０" <= ch <= "９"


def _is_fullwidth_alpha(ch: str) -> bool:
    return "Ａ" <= ch <= "Ｚ" or "ａ" <= ch <= "ｚ"


def _shift(text: str, predicate, offset: int) -> str:
    return "".join(chr(ord(ch) + offset) if predicate(ch) else ch for ch in text)


def convert_width(text: str, target: str = "numbers", direction: str = "fullwidth") -> str:
    """
    Convert ``target`` characters in ``text`` to full-width or half-width.

    Digits and Latin letters move by a fixed code point offset; symbols go
    through the explicit lookup tables. Characters outside the target class
    are left untouched.
    """
    if direction not in WIDTH_DIRECTIONS:
        raise ValueError(f"Unknown width direction: {direction}")
    to_full = direction == "fullwidth"
    if target == "numbers":
        if to_full:
            return _shift(text, _is_halfwidth_digit, _FULLWIDTH_OFFSET)
        return _shift(text, _is_fullwidth_digit, -_FULLWIDTH_OFFSET)
    if target == "alphabet":
        if to_full:
            return _shift(text, _is_halfwidth_alpha, _FULLWIDTH_OFFSET)
        return _shift(text, _is_fullwidth_alpha, -_FULLWIDTH_OFFSET)
    if target == "symbols":
        table = SYMBOL_FULLWIDTH_MAP if to_full else SYMBOL_HALFWIDTH_MAP
        return "".join(table.get(ch, ch) for ch in text)
    raise ValueError(f"Unknown width target: {target}")


def numeral_to_kanji(text: str) -> str:
    """
    Spell a decimal numeral with one kanji glyph per digit.

    Place-value units are not produced: ``"123"`` becomes ``"一二三"``. The
    value is parsed as an integer first, so leading zeros are dropped and
    full-width digits are accepted.
    """
    value = text.strip()
    if not value or not value.isdecimal():
        raise ValueError(f"Invalid number for kanji conversion: {text!r}")
    return "".join(KANJI_DIGITS[int(d)] for d in str(int(value)))
