"""Extraction of package references from R source trees."""

import re
from collections.abc import Iterator
from pathlib import Path

import structlog

from .config import ValidationConfig
from .detect import R_SCRIPT, UNKNOWN, code_lines, identify
from .errors import ExtractionError
from .models import PackageReference

log = structlog.get_logger("depsync.extract")

_NAME = r"[A-Za-z][A-Za-z0-9._]*"


def strip_comment(line: str) -> str:
    """Remove a trailing ``#`` comment, ignoring ``#`` inside string literals."""
    quote = None
    escaped = False
    for index, char in enumerate(line):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
        elif char in "\"'`":
            quote = char
        elif char == "#":
            return line[:index]
    return line


def mask_strings(line: str) -> str:
    """Blank out the contents of quoted strings, keeping column positions."""
    chars = list(line)
    quote = None
    escaped = False
    for index, char in enumerate(line):
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
                continue
            chars[index] = " "
        elif char in "\"'":
            quote = char
    return "".join(chars)


class ReferenceExtractor:
    """Scanner for library/require calls, namespace access and roxygen imports."""

    def __init__(self, config: ValidationConfig):
        self.config = config
        self.errors: list[ExtractionError] = []
        self._extensions = {ext.lower() for ext in config.file_extensions}

        self.library_call = re.compile(
            rf"\b(?:library|require)\s*\(\s*([\"']?)({_NAME})\1\s*([,)])"
        )
        self.conditional_require = re.compile(
            rf"\b(?:requireNamespace|loadNamespace)\s*\(\s*[\"']({_NAME})[\"']"
        )
        self.namespace_call = re.compile(rf"(?<![\w.])({_NAME}):::?(?=[A-Za-z._`])")
        self.p_load_call = re.compile(r"\bp_load\s*\(([^)]*)\)")
        self.character_only = re.compile(r"character\.only\s*=\s*(?:TRUE|T)\b")

        self.roxygen_line = re.compile(r"^\s*#'")
        self.roxygen_import_from = re.compile(rf"@import(?:Classes|Methods)?From\s+({_NAME})")
        self.roxygen_import = re.compile(r"@import\s+(.+)$")
        self.roxygen_tag = re.compile(r"@(\w+)")

    def iter_files(self, root: Path, strict: bool = False) -> Iterator[Path]:
        """Yield source files under ``root`` in a stable order."""
        seen: set[Path] = set()

        if self.config.include_root_files:
            for path in sorted(root.iterdir()):
                if path.is_file() and self._selected(path):
                    seen.add(path)
                    yield path

        for dirname in self.config.scan_dirs(strict):
            directory = root / dirname
            if not directory.is_dir():
                continue
            for path in sorted(directory.rglob("*")):
                relative = path.relative_to(root)
                if any(part.startswith(".") for part in relative.parts):
                    continue
                if path.is_file() and self._selected(path) and path not in seen:
                    seen.add(path)
                    yield path

    def extract(self, root: Path, strict: bool = False) -> Iterator[PackageReference]:
        """Lazily yield every package reference found under ``root``.

        Unreadable files are recorded in ``self.errors`` and skipped.
        """
        for path in self.iter_files(root, strict):
            try:
                content = self._read(path)
            except ExtractionError as exc:
                log.warning("extract.unreadable", file=str(path), reason=exc.reason)
                self.errors.append(exc)
                continue

            display = path.relative_to(root)
            kind = identify(content, path.name)
            yield from self.extract_text(content, display, kind, include_examples=strict)

    def extract_text(
        self,
        content: str,
        path: Path,
        kind: str = R_SCRIPT,
        include_examples: bool = False,
    ) -> Iterator[PackageReference]:
        """Yield references from the code regions of a single document."""
        if kind == UNKNOWN:
            return

        in_examples = False
        for number, line in code_lines(content, kind):
            if self.roxygen_line.match(line):
                body = self.roxygen_line.sub("", line, count=1)
                tag = self.roxygen_tag.search(body)
                if tag:
                    in_examples = tag.group(1) in ("examples", "examplesIf")
                    yield from self._roxygen(body, path, number)
                elif in_examples and include_examples:
                    yield from self._code(body, path, number)
                continue

            in_examples = False
            yield from self._code(line, path, number)

    def _roxygen(self, body: str, path: Path, number: int) -> Iterator[PackageReference]:
        match = self.roxygen_import_from.search(body)
        if match:
            yield PackageReference(match.group(1), path, number, "roxygen_import")
            return

        match = self.roxygen_import.search(body)
        if match:
            for name in match.group(1).split():
                if re.fullmatch(_NAME, name):
                    yield PackageReference(name, path, number, "roxygen_import")

    def _code(self, line: str, path: Path, number: int) -> Iterator[PackageReference]:
        code = strip_comment(line)
        if not code.strip():
            return

        for match in self.library_call.finditer(code):
            if not match.group(1) and match.group(3) == "," and self._character_only(code, match.end()):
                continue
            yield PackageReference(match.group(2), path, number, "library_call")

        for match in self.conditional_require.finditer(code):
            yield PackageReference(match.group(1), path, number, "conditional_require")

        # Text like "see dplyr::filter" inside a message is not a call
        for match in self.namespace_call.finditer(mask_strings(code)):
            yield PackageReference(match.group(1), path, number, "namespace_call")

        for match in self.p_load_call.finditer(code):
            for arg in match.group(1).split(","):
                arg = arg.strip().strip("\"'")
                if "=" in arg or not re.fullmatch(_NAME, arg):
                    continue
                yield PackageReference(arg, path, number, "p_load_call")

    def _character_only(self, code: str, start: int) -> bool:
        end = code.find(")", start)
        rest = code[start:] if end == -1 else code[start:end]
        return bool(self.character_only.search(rest))

    def _selected(self, path: Path) -> bool:
        return path.suffix[1:].lower() in self._extensions

    @staticmethod
    def _read(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ExtractionError(path, f"not valid UTF-8 ({exc.reason})") from exc
        except OSError as exc:
            raise ExtractionError(path, exc.strerror or str(exc)) from exc


def extract_references(
    root: Path, config: ValidationConfig, strict: bool = False
) -> tuple[list[PackageReference], list[ExtractionError]]:
    """Scan a project and return all references plus recoverable errors.

    Args:
        root: Project root directory
        config: Run configuration
        strict: Also scan secondary directories and roxygen examples

    Returns:
        Tuple of (references, extraction errors)
    """
    extractor = ReferenceExtractor(config)
    references = list(extractor.extract(root, strict))
    return references, extractor.errors
