from __future__ import annotations

import argparse
import html
import sys
from importlib import metadata
from pathlib import Path

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.markup import escape
from rich.table import Table

import tomllib

from .builder import ChapterConverter, ChapterResult
from .config import STYLESHEET_NAME, ProcessingLimits, set_debug_logging
from .errors import TatekumiError
from .patterns import load_default_pattern_groups, load_pattern_groups
from .registry import PatternRegistry
from .stylesheet import default_stylesheet

CHAPTER_SUFFIXES = {".html", ".htm", ".xhtml", ".txt"}


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("tatekumi")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"tatekumi {__version__}",
    )


def _add_engine_options(ap: argparse.ArgumentParser) -> None:
    ap.add_argument(
        "--patterns",
        metavar="DIR",
        help="Directory of rule group .json files to use instead of the bundled rules.",
    )
    ap.add_argument(
        "--skip-invalid",
        action="store_true",
        help="Drop malformed rules with a warning instead of failing.",
    )
    ap.add_argument(
        "--max-depth",
        type=int,
        help="Maximum nesting depth for group reprocessing (default: 10).",
    )
    ap.add_argument(
        "--max-iterations",
        type=int,
        help="Maximum rule applications per chapter (default: 1000).",
    )
    ap.add_argument(
        "--timeout",
        type=float,
        help="Per-chapter processing time limit in seconds (default: 10).",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Print rule matches and loader diagnostics.",
    )


def build_convert_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tatekumi convert",
        description="Typeset one chapter of HTML as a vertical-writing XHTML document.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_path", help="Chapter markup file (.html, .xhtml or .txt).")
    ap.add_argument("-t", "--title", help="Chapter title (default: the file name stem).")
    ap.add_argument(
        "-o",
        "--output",
        help="Where to write the XHTML document (default: print to stdout).",
    )
    _add_engine_options(ap)
    return ap


def build_batch_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tatekumi batch",
        description="Typeset every chapter file in a directory and write style.css beside them.",
    )
    _add_version_flag(ap)
    ap.add_argument("input_dir", help="Directory of chapter markup files.")
    ap.add_argument(
        "-o",
        "--output-dir",
        help="Output directory (default: <input_dir>/xhtml).",
    )
    ap.add_argument(
        "-j",
        "--jobs",
        type=int,
        default=None,
        help="Number of chapters converted in parallel.",
    )
    _add_engine_options(ap)
    return ap


def build_patterns_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tatekumi patterns",
        description="List compiled rules in the order the scanner tries them.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "--all",
        action="store_true",
        help="Include disabled rules.",
    )
    ap.add_argument("--patterns", metavar="DIR", help="Directory of rule group .json files.")
    ap.add_argument("--skip-invalid", action="store_true", help="Drop malformed rules with a warning.")
    return ap


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="tatekumi",
        description="Vertical Japanese (tategaki) typesetting for web novel chapters.",
        epilog="Commands: convert, batch, patterns. Run `tatekumi <command> --help` for options.",
    )
    _add_version_flag(ap)
    return ap


def _limits_from_args(args: argparse.Namespace) -> ProcessingLimits:
    return ProcessingLimits.from_mapping(
        {
            "max_recursion_depth": getattr(args, "max_depth", None),
            "max_pattern_iterations": getattr(args, "max_iterations", None),
            "pattern_timeout": getattr(args, "timeout", None),
        }
    )


def _build_registry(args: argparse.Namespace, limits: ProcessingLimits | None = None) -> PatternRegistry:
    if args.patterns:
        groups = load_pattern_groups(Path(args.patterns).expanduser(), skip_invalid=args.skip_invalid)
    else:
        groups = load_default_pattern_groups()
    return PatternRegistry.from_groups(groups, limits)


def _build_converter(args: argparse.Namespace) -> ChapterConverter:
    set_debug_logging(bool(getattr(args, "debug", False)))
    limits = _limits_from_args(args)
    return ChapterConverter(_build_registry(args, limits), limits)


def _run_convert(args: argparse.Namespace) -> int:
    input_path = Path(args.input_path).expanduser()
    if not input_path.is_file():
        raise SystemExit(f"Input file not found: {input_path}")
    try:
        converter = _build_converter(args)
        raw_html = _read_chapter(input_path)
        document = converter.convert(raw_html, args.title or input_path.stem)
    except TatekumiError as exc:
        raise SystemExit(f"[tatekumi] {type(exc).__name__}: {exc}") from exc
    if args.output:
        output_path = Path(args.output).expanduser()
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(document, encoding="utf-8")
        stylesheet_path = output_path.parent / STYLESHEET_NAME
        if not stylesheet_path.exists():
            stylesheet_path.write_text(default_stylesheet(), encoding="utf-8")
    else:
        sys.stdout.write(document)
    return 0


def _text_to_html(text: str) -> str:
    lines = (line.strip() for line in text.splitlines())
    return "\n".join(f"<p>{html.escape(line, quote=False)}</p>" for line in lines if line)


def _read_chapter(path: Path) -> str:
    raw = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".txt":
        return _text_to_html(raw)
    return raw


def _chapter_files(input_dir: Path) -> list[Path]:
    return sorted(p for p in input_dir.iterdir() if p.is_file() and p.suffix.lower() in CHAPTER_SUFFIXES)


def _run_batch(args: argparse.Namespace) -> int:
    input_dir = Path(args.input_dir).expanduser()
    if not input_dir.is_dir():
        raise SystemExit(f"Input directory not found: {input_dir}")
    files = _chapter_files(input_dir)
    if not files:
        raise SystemExit(f"No chapter files found in directory: {input_dir}")
    output_dir = Path(args.output_dir).expanduser() if args.output_dir else input_dir / "xhtml"
    if args.jobs is not None and args.jobs < 1:
        raise SystemExit("--jobs must be at least 1.")

    try:
        converter = _build_converter(args)
    except TatekumiError as exc:
        raise SystemExit(f"[tatekumi] {type(exc).__name__}: {exc}") from exc

    chapters = [(_read_chapter(path), path.stem) for path in files]
    console = Console(stderr=True)
    progress = Progress(
        TextColumn("{task.description}", justify="left"),
        BarColumn(bar_width=None),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
        disable=not console.is_terminal,
    )
    with progress:
        task = progress.add_task("Chapters", total=len(chapters))

        def _advance(result: ChapterResult) -> None:
            progress.advance(task)

        results = converter.convert_chapters(chapters, max_workers=args.jobs, progress=_advance)

    output_dir.mkdir(parents=True, exist_ok=True)
    (output_dir / STYLESHEET_NAME).write_text(default_stylesheet(), encoding="utf-8")
    failures: list[ChapterResult] = []
    for path, result in zip(files, results):
        if not result.ok or result.document is None:
            failures.append(result)
            continue
        (output_dir / f"{path.stem}.xhtml").write_text(result.document, encoding="utf-8")

    converted = len(results) - len(failures)
    console.print(f"Converted {converted}/{len(results)} chapter(s) into {output_dir}")
    for result in failures:
        console.print(f"[red]Failed[/red] {escape(result.title)}: {type(result.error).__name__}: {escape(str(result.error))}")
    return 1 if failures else 0


def _run_patterns(args: argparse.Namespace) -> int:
    try:
        registry = _build_registry(args)
    except TatekumiError as exc:
        raise SystemExit(f"[tatekumi] {type(exc).__name__}: {exc}") from exc
    rules = registry.all_rules() if args.all else registry.get_all()

    table = Table(title=f"{len(rules)} rule(s)")
    table.add_column("Priority", justify="right")
    table.add_column("Name")
    table.add_column("Output")
    table.add_column("Expression")
    table.add_column("Enabled")
    for rule in rules:
        table.add_row(
            f"{rule.priority:.3f}",
            rule.name,
            rule.definition.transform.output_kind,
            escape(rule.pattern.pattern),
            "yes" if rule.enabled else "no",
        )
    Console().print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "convert":
        convert_args = build_convert_parser().parse_args(argv[1:])
        return _run_convert(convert_args)
    if argv and argv[0] == "batch":
        batch_args = build_batch_parser().parse_args(argv[1:])
        return _run_batch(batch_args)
    if argv and argv[0] == "patterns":
        patterns_args = build_patterns_parser().parse_args(argv[1:])
        return _run_patterns(patterns_args)

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    parser.parse_args(argv)
    parser.error(f"Unknown command: {argv[0]}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
