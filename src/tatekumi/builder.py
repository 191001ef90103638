from __future__ import annotations

import html
import re
import time
import xml.etree.ElementTree as ET
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

import bleach
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .config import (
    ALLOWED_ATTRIBUTES,
    ALLOWED_TAGS,
    DOCUMENT_LANGUAGE,
    IDEOGRAPHIC_SPACE,
    PARAGRAPH_TAGS,
    STYLESHEET_NAME,
    ProcessingLimits,
    debug_log,
)
from .errors import GenerationError, TatekumiError, ValidationError
from .nodes import GroupedNode, InlineNode, TextNode, merge_text_nodes
from .registry import PatternRegistry, RewriteBudget
from .scanner import ProcessingContext, Scanner

__all__ = [
    "XHTML_TEMPLATE",
    "ChapterConverter",
    "ChapterResult",
    "OutputBuilder",
    "sanitize_html",
    "convert",
]

XHTML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xml:lang="{lang}">
  <head>
    <title>{title}</title>
    <meta charset="UTF-8" />
    <link rel="stylesheet" type="text/css" href="{stylesheet}" />
  </head>
  <body>
{body}
  </body>
</html>
"""

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
_XML_DECLARATION_RE = re.compile(r"<\?xml[^>]*\?>\s*")

# Ruby readings are left as written.
_SKIP_TAGS = {"rt", "rp"}
_DROP_WITH_CONTENT = ("script", "style", "noscript", "template", "iframe", "object", "embed", "svg", "math")

ProgressCallback = Callable[["ChapterResult"], None]


def sanitize_html(raw_html: str) -> str:
    """
    Reduce ``raw_html`` to the inline tag set the builder understands.

    Elements whose content is code or embedded media are removed together
    with that content; every other disallowed tag is unwrapped.
    """
    soup = BeautifulSoup(raw_html, "html.parser")
    for tag in soup.find_all(list(_DROP_WITH_CONTENT)):
        if not tag.decomposed:
            tag.decompose()
    return bleach.clean(
        str(soup),
        tags=set(ALLOWED_TAGS),
        attributes=ALLOWED_ATTRIBUTES,
        strip=True,
        strip_comments=True,
    )


def _is_plain_text(node: object) -> bool:
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


class OutputBuilder:
    """Walks a parsed chapter and splices scanner output into its text nodes."""

    def __init__(self, scanner: Scanner) -> None:
        self.scanner = scanner

    def process(self, soup: BeautifulSoup, context: ProcessingContext) -> None:
        for child in list(soup.contents):
            self._process_node(soup, child, context)

    def _process_node(self, soup: BeautifulSoup, node: object, context: ProcessingContext) -> None:
        if isinstance(node, Tag):
            if node.name in _SKIP_TAGS:
                return
            if node.name in PARAGRAPH_TAGS:
                ensure_leading_space(node)
            for child in list(node.contents):
                self._process_node(soup, child, context)
        elif _is_plain_text(node):
            self._process_text(soup, node, context)  # type: ignore[arg-type]

    def _process_text(self, soup: BeautifulSoup, node: NavigableString, context: ProcessingContext) -> None:
        text = str(node)
        if not text:
            return
        nodes = merge_text_nodes(self.scanner.scan(text, context.for_text()))
        if len(nodes) == 1 and isinstance(nodes[0], TextNode):
            if nodes[0].text != text:
                node.replace_with(nodes[0].text)
            return
        if not nodes:
            node.extract()
            return
        node.replace_with(*(self._materialize(soup, item) for item in nodes))

    @staticmethod
    def _materialize(soup: BeautifulSoup, node: InlineNode):
        if isinstance(node, GroupedNode):
            span = soup.new_tag("span", attrs={"class": node.css_class})
            span.string = node.text
            return span
        return NavigableString(node.text)


def ensure_leading_space(tag: Tag) -> None:
    """Make a paragraph open with an ideographic space (Japanese indent)."""
    if not tag.contents:
        tag.append(IDEOGRAPHIC_SPACE)
        return
    first = tag.contents[0]
    if _is_plain_text(first) and str(first):
        text = str(first)
        if not text[0].isspace():
            first.replace_with(IDEOGRAPHIC_SPACE + text)
        return
    tag.insert(0, NavigableString(IDEOGRAPHIC_SPACE))


def _render_document(title: str, body: str, stylesheet: str) -> str:
    document = XHTML_TEMPLATE.format(
        lang=DOCUMENT_LANGUAGE,
        title=html.escape(title, quote=True),
        stylesheet=html.escape(stylesheet, quote=True),
        body=body,
    )
    # Exactly one declaration, at the very start.
    return XML_DECLARATION + "\n" + _XML_DECLARATION_RE.sub("", document)


def _check_well_formed(document: str) -> None:
    try:
        ET.fromstring(document.encode("utf-8"))
    except ET.ParseError as exc:
        raise GenerationError(f"Generated XHTML is not well-formed: {exc}") from exc


@dataclass
class ChapterResult:
    index: int
    title: str
    document: str | None = None
    error: TatekumiError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class ChapterConverter:
    """
    Turns sanitized chapter markup into a typeset XHTML document.

    One converter can be shared by many threads: each conversion builds its
    own ProcessingContext and rewrite budget.
    """

    def __init__(
        self,
        registry: PatternRegistry | None = None,
        limits: ProcessingLimits | None = None,
        *,
        stylesheet: str = STYLESHEET_NAME,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry or PatternRegistry.with_defaults(limits)
        self.limits = limits or self.registry.limits
        self.scanner = Scanner(self.registry, self.limits, clock=clock)
        self.builder = OutputBuilder(self.scanner)
        self.stylesheet = stylesheet

    def convert(self, raw_html: str, chapter_title: str = "Chapter", *, budget: RewriteBudget | None = None) -> str:
        if not isinstance(raw_html, str) or not raw_html.strip():
            raise ValidationError("HTML content is empty")
        if chapter_title is not None and not isinstance(chapter_title, str):
            raise ValidationError(f"Chapter title must be a string, got {type(chapter_title).__name__}")
        title = (chapter_title or "").strip() or "Chapter"
        context = self.scanner.new_context(budget or RewriteBudget(self.limits.max_pattern_iterations))

        try:
            soup = BeautifulSoup(sanitize_html(raw_html), "html.parser")
            heading = soup.new_tag("h1")
            heading.string = title
            soup.insert(0, heading)
            self.builder.process(soup, context)
            body = soup.decode_contents(formatter="minimal")
        except TatekumiError:
            raise
        except Exception as exc:
            raise GenerationError(f"XHTML conversion failed: {exc}") from exc

        document = _render_document(title, body, self.stylesheet)
        _check_well_formed(document)
        debug_log(f"converted {title!r}: {context.budget.count if context.budget else 0} rule applications, {len(document)} chars")
        return document

    def convert_chapters(
        self,
        chapters: Iterable[tuple[str, str]],
        *,
        max_workers: int | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[ChapterResult]:
        """
        Convert ``(raw_html, title)`` pairs concurrently.

        A failing chapter is reported in its ChapterResult; the others still
        complete. Results keep the input order.
        """
        items: Sequence[tuple[str, str]] = list(chapters)

        def _run(index: int, raw_html: str, title: str) -> ChapterResult:
            result = ChapterResult(index=index, title=title)
            try:
                result.document = self.convert(raw_html, title)
            except TatekumiError as exc:
                debug_log(f"chapter {index} failed: {exc}")
                result.error = exc
            if progress is not None:
                progress(result)
            return result

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_run, index, raw_html, title) for index, (raw_html, title) in enumerate(items)]
            return [future.result() for future in futures]


def convert(raw_html: str, chapter_title: str = "Chapter", registry: PatternRegistry | None = None) -> str:
    return ChapterConverter(registry).convert(raw_html, chapter_title)
