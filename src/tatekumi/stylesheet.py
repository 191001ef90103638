from __future__ import annotations

from .config import TCY_CLASS

DEFAULT_FONT_FAMILIES = (
    "Noto Serif CJK JP",
    "Noto Serif JP",
    "Hiragino Mincho ProN",
    "Yu Mincho",
    "YuMincho",
    "MS Mincho",
    "serif",
)


def _font_stack(families: tuple[str, ...]) -> str:
    return ", ".join(name if name == "serif" or " " not in name else f'"{name}"' for name in families)


def default_stylesheet(
    *,
    writing_mode: str = "vertical-rl",
    line_height: float = 1.8,
    font_size: str = "1em",
    padding: str = "2em 2.5em",
    font_families: tuple[str, ...] = DEFAULT_FONT_FAMILIES,
    tcy_class: str = TCY_CLASS,
) -> str:
    """Return the vertical-writing stylesheet every chapter links as ``style.css``."""
    return f"""@charset "UTF-8";

html {{
  writing-mode: {writing_mode};
  -webkit-writing-mode: {writing_mode};
  -epub-writing-mode: {writing_mode};
  text-size-adjust: 100%;
  -webkit-text-size-adjust: 100%;
  margin: 0;
  padding: {padding};
  font-size: {font_size};
}}

body {{
  writing-mode: {writing_mode};
  -webkit-writing-mode: {writing_mode};
  -epub-writing-mode: {writing_mode};
  text-orientation: mixed;
  -webkit-text-orientation: mixed;
  -epub-text-orientation: mixed;
  line-height: {line_height};
  font-family: {_font_stack(font_families)};
  margin: 0;
  padding: {padding};
  line-break: strict;
  -webkit-line-break: strict;
  -epub-line-break: strict;
  overflow-wrap: break-word;
  text-align: justify;
  text-justify: inter-ideograph;
}}

h1 {{
  font-size: 1.5em;
  font-weight: normal;
  margin: 0 0 2em 0;
  break-before: page;
  break-after: avoid;
}}

p {{
  margin: 0;
  padding: 0;
  orphans: 2;
  widows: 2;
  hanging-punctuation: force-end;
}}

ruby {{
  ruby-position: over;
  -webkit-ruby-position: over;
  -epub-ruby-position: over;
}}

rt {{
  font-size: 0.5em;
  line-height: 1;
}}

.{tcy_class} {{
  text-combine-upright: all;
  -webkit-text-combine: horizontal;
  -epub-text-combine: horizontal;
  -ms-text-combine-horizontal: all;
  font-variant-numeric: tabular-nums;
  letter-spacing: 0;
}}
"""


__all__ = ["DEFAULT_FONT_FAMILIES", "default_stylesheet"]
