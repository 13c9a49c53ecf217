"""Source file kind detection and code-region selection."""

import re
from collections.abc import Iterator

R_SCRIPT = "r"
R_MARKDOWN = "rmarkdown"
SWEAVE = "sweave"
UNKNOWN = "unknown"

_CHUNK_START_MD = re.compile(r"^\s*```+\s*\{\s*[rR]\b")
_CHUNK_END_MD = re.compile(r"^\s*```+\s*$")
_CHUNK_START_RNW = re.compile(r"^\s*<<.*>>=\s*$")
_CHUNK_END_RNW = re.compile(r"^\s*@(\s.*)?$")
_INLINE_R = re.compile(r"`r\s+([^`]+)`")


def identify(content: str, filename: str | None = None) -> str:
    """Detect the kind of R source from filename and content hints.

    Args:
        content: The file content
        filename: Optional filename for additional context

    Returns:
        One of 'r', 'rmarkdown', 'sweave' or 'unknown'
    """
    # Filename-based detection (takes precedence)
    if filename:
        lowered = filename.lower()
        if lowered.endswith(".r"):
            return R_SCRIPT
        if lowered.endswith((".rmd", ".qmd")):
            return R_MARKDOWN
        if lowered.endswith((".rnw", ".snw")):
            return SWEAVE

    # Content-based detection
    if re.search(r"^\s*```+\s*\{\s*[rR]\b", content, re.MULTILINE):
        return R_MARKDOWN
    if re.search(r"^\s*<<.*>>=\s*$", content, re.MULTILINE):
        return SWEAVE

    r_patterns = [
        r"\b(?:library|require)\s*\(",
        r"^\s*[\w.]+\s*<-\s*function\s*\(",
        r"^#'\s*@",
    ]
    for pattern in r_patterns:
        if re.search(pattern, content, re.MULTILINE):
            return R_SCRIPT

    return UNKNOWN


def code_lines(content: str, kind: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, text)`` for the parts of a file that are R code.

    Plain scripts yield every line. Literate documents yield chunk bodies;
    for R Markdown, inline `` `r ...` `` expressions on prose lines are
    yielded as well.
    """
    lines = content.splitlines()

    if kind == R_SCRIPT:
        yield from enumerate(lines, start=1)
        return

    if kind == R_MARKDOWN:
        in_chunk = False
        for number, line in enumerate(lines, start=1):
            if in_chunk:
                if _CHUNK_END_MD.match(line):
                    in_chunk = False
                else:
                    yield number, line
            elif _CHUNK_START_MD.match(line):
                in_chunk = True
            else:
                inline = _INLINE_R.findall(line)
                if inline:
                    yield number, "; ".join(inline)
        return

    if kind == SWEAVE:
        in_chunk = False
        for number, line in enumerate(lines, start=1):
            if in_chunk:
                if _CHUNK_END_RNW.match(line):
                    in_chunk = False
                else:
                    yield number, line
            elif _CHUNK_START_RNW.match(line):
                in_chunk = True
        return
