"""Parse worklog event titles such as ``【現場A | 顧客B】点検 / 山田・佐藤``."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass


DEFAULT_FALLBACK_WORKER = "未指定"

# Matched against NFKC-normalized text, so full-width "｜" and "／" arrive as
# their ASCII forms. The full-width forms are listed too so the pattern also
# holds on text that skipped normalization.
TITLE_PATTERN = re.compile(
    r"【(?P<work>[^】|｜]+?)"
    r"(?:\s*[|｜]\s*(?P<client>[^】]*?))?"
    r"\s*】"
    r"(?P<task>[^/／]+?)"
    r"(?:\s*[/／]\s*(?P<workers>[^/／]+?))?"
    r"\s*"
)
WORKER_SEPARATOR = re.compile(r"[・,]")


@dataclass(frozen=True)
class ParsedTitle:
    work_name: str
    client_name: str
    task: str
    workers: tuple[str, ...]


def normalize_title(text: object) -> str:
    if not isinstance(text, str) or not text:
        return ""
    return unicodedata.normalize("NFKC", text.replace("\u00a0", " ")).strip()


def split_workers(text: str) -> tuple[str, ...] | None:
    workers = tuple(token.strip() for token in WORKER_SEPARATOR.split(text))
    if not all(workers):
        return None
    return workers


def parse_title(
    raw_title: object, fallback_worker: str = DEFAULT_FALLBACK_WORKER
) -> ParsedTitle | None:
    """Return the structured title, or None when the title does not match.

    The whole normalized title must match; a title with any unmatched leading
    or trailing text is rejected rather than partially parsed.
    """
    title = normalize_title(raw_title)
    if not title:
        return None

    match = TITLE_PATTERN.fullmatch(title)
    if match is None:
        return None

    work_name = match.group("work").strip()
    task = match.group("task").strip()
    if not work_name or not task:
        return None

    worker_text = match.group("workers")
    if worker_text is None:
        workers: tuple[str, ...] | None = (fallback_worker,)
    else:
        workers = split_workers(worker_text)
    if not workers:
        return None

    return ParsedTitle(
        work_name=work_name,
        client_name=(match.group("client") or "").strip(),
        task=task,
        workers=workers,
    )


def format_title(parsed: ParsedTitle) -> str:
    head = parsed.work_name
    if parsed.client_name:
        head = f"{head} | {parsed.client_name}"
    return f"【{head}】{parsed.task} / {'・'.join(parsed.workers)}"
