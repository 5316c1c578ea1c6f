"""Search/replace edit blocks.

Block format (first line is the target file, optionally ``::N`` for the
number of expected replacements)::

    /path/to/file.txt::2
    <<<<<<< SEARCH
    old text
    =======
    new text
    >>>>>>> REPLACE

Matching is exact first, then with CRLF normalized to LF. When neither
matches, the closest line window is reported with a character diff instead
of editing the file.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from difflib import SequenceMatcher

from .filesystem import FileSystemManager

__all__ = [
    "EditBlock",
    "EditBlockError",
    "EditResult",
    "FUZZY_THRESHOLD",
    "apply_edit_block",
    "highlight_differences",
    "parse_edit_block",
]

logger = logging.getLogger(__name__)

SEARCH_MARKER = "<<<<<<< SEARCH"
DIVIDER_MARKER = "======="
REPLACE_MARKER = ">>>>>>> REPLACE"
MARKERS = (SEARCH_MARKER, DIVIDER_MARKER, REPLACE_MARKER)

# Minimum similarity (0-1) for a near match to be shown as a suggestion
FUZZY_THRESHOLD = 0.7


class EditBlockError(ValueError):
    """Malformed edit block."""


@dataclass(frozen=True)
class EditBlock:
    file_path: str
    search: str
    replace: str
    expected_replacements: int = 1


@dataclass(frozen=True)
class EditResult:
    success: bool
    message: str
    match_count: int = 0


def _has_markers(text: str) -> bool:
    return any(marker in text for marker in MARKERS)


def parse_edit_block(block_content: str) -> EditBlock:
    """Parse the textual block into an EditBlock.

    Raises:
        EditBlockError: Missing path, missing or misordered markers, empty
            search text, or markers nested inside the search/replace text
    """
    lines = block_content.split("\n")
    header = lines[0].strip()

    expected = 1
    if "::" in header:
        header, _, count = header.partition("::")
        header = header.strip()
        if count.strip().isdigit() and int(count) > 0:
            expected = int(count)
    if not header:
        raise EditBlockError("Invalid edit block format - missing file path on first line")

    try:
        search_start = lines.index(SEARCH_MARKER)
        divider = lines.index(DIVIDER_MARKER)
        replace_end = lines.index(REPLACE_MARKER)
    except ValueError:
        raise EditBlockError("Invalid edit block format - missing markers") from None

    if not search_start < divider < replace_end:
        raise EditBlockError("Invalid edit block format - markers in wrong order")

    search = "\n".join(lines[search_start + 1:divider])
    replace = "\n".join(lines[divider + 1:replace_end])

    if not search.strip():
        raise EditBlockError("Invalid edit block format - empty search string")
    if _has_markers(search) or _has_markers(replace):
        raise EditBlockError(
            "Invalid edit block format - nested markers detected in search or replace text"
        )

    return EditBlock(file_path=header, search=search, replace=replace, expected_replacements=expected)


def highlight_differences(expected: str, actual: str) -> str:
    """Character diff around the common prefix/suffix: ``pre{-old-}{+new+}post``."""
    limit = min(len(expected), len(actual))
    prefix = 0
    while prefix < limit and expected[prefix] == actual[prefix]:
        prefix += 1
    suffix = 0
    while (
        suffix < limit - prefix
        and expected[len(expected) - 1 - suffix] == actual[len(actual) - 1 - suffix]
    ):
        suffix += 1

    removed = expected[prefix:len(expected) - suffix]
    added = actual[prefix:len(actual) - suffix]
    return f"{expected[:prefix]}{{-{removed}-}}{{+{added}+}}{expected[len(expected) - suffix:]}"


def _closest_window(content: str, search: str) -> tuple[str, float]:
    """Best-matching run of lines with the same line count as ``search``."""
    lines = content.split("\n")
    width = max(1, search.count("\n") + 1)
    best, best_ratio = "", 0.0
    for start in range(max(1, len(lines) - width + 1)):
        window = "\n".join(lines[start:start + width])
        ratio = SequenceMatcher(None, search, window, autojunk=False).ratio()
        if ratio > best_ratio:
            best, best_ratio = window, ratio
    return best, best_ratio


def _count_mismatch(block: EditBlock, count: int) -> EditResult:
    return EditResult(
        success=False,
        message=(
            f"Expected {block.expected_replacements} occurrence(s) but found {count} in "
            f"{block.file_path}. Add more context to the search text, or append "
            f"'::{count}' to the file path to replace all of them."
        ),
        match_count=count,
    )


async def apply_edit_block(fs: FileSystemManager, block: EditBlock) -> EditResult:
    """Apply one search/replace block to its file.

    The file is only written when the number of matches equals
    ``block.expected_replacements``.
    """
    if not block.search:
        return EditResult(False, "Empty search strings are not allowed.")
    if _has_markers(block.replace):
        return EditResult(False, "Replace string contains edit markers, which is not allowed.")

    content = await fs.read_file(block.file_path)

    count = content.count(block.search)
    if count:
        if count != block.expected_replacements:
            return _count_mismatch(block, count)
        await fs.write_file(block.file_path, content.replace(block.search, block.replace))
        logger.info(f"Applied edit to {block.file_path} ({count} replacement(s))")
        return EditResult(True, "Successfully applied edit", count)

    normalized = content.replace("\r\n", "\n")
    search = block.search.replace("\r\n", "\n")
    count = normalized.count(search)
    if count:
        if count != block.expected_replacements:
            return _count_mismatch(block, count)
        updated = normalized.replace(search, block.replace.replace("\r\n", "\n"))
        if "\r\n" in content:
            updated = updated.replace("\n", "\r\n")
        await fs.write_file(block.file_path, updated)
        logger.info(f"Applied edit to {block.file_path} with normalized line endings")
        return EditResult(True, "Successfully applied edit", count)

    started = time.perf_counter()
    candidate, similarity = _closest_window(content, block.search)
    elapsed_ms = (time.perf_counter() - started) * 1000

    if similarity >= FUZZY_THRESHOLD:
        return EditResult(
            False,
            f"Exact match not found, but found a similar text with {round(similarity * 100)}% "
            f"similarity (found in {elapsed_ms:.2f}ms):\n\n"
            f"Differences:\n{highlight_differences(block.search, candidate)}\n\n"
            "To replace this text, use the exact text found in the file.",
        )
    return EditResult(
        False,
        f'Search content not found in {block.file_path}. The closest match was "{candidate}" '
        f"with only {round(similarity * 100)}% similarity, which is below the "
        f"{round(FUZZY_THRESHOLD * 100)}% threshold.",
    )
