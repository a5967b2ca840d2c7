"""Optional source citations shown beneath each question.

Citations are decoration only: a missing or malformed citation file leaves the
quiz fully usable and simply renders nothing.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from rich.text import Text

__all__ = ["Citation", "load_citations", "render_citations"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Citation:
    label: str
    url: Optional[str] = None

    @property
    def target(self) -> Optional[str]:
        if self.url:
            return self.url
        if self.label.startswith(("http://", "https://")):
            return self.label
        return None


def load_citations(path: Optional[Path]) -> dict[int, list[Citation]]:
    """Read a JSON object mapping question index to citation entries.

    Entries may be plain label strings or ``{"label": ..., "url": ...}``
    tables.
    """

    if path is None:
        return {}
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning(
            "Ignoring citations file: %s", exc, extra={"citations": str(path)}
        )
        return {}
    if not isinstance(payload, Mapping):
        logger.warning(
            "Citations file must hold a JSON object",
            extra={"citations": str(path)},
        )
        return {}

    citations: dict[int, list[Citation]] = {}
    for raw_index, entries in payload.items():
        try:
            index = int(raw_index)
        except ValueError:
            continue
        if not isinstance(entries, list):
            continue
        parsed = [c for c in (_parse_entry(item) for item in entries) if c]
        if parsed:
            citations[index] = parsed
    return citations


def _parse_entry(item: Any) -> Optional[Citation]:
    if isinstance(item, str):
        label = item.strip()
        return Citation(label) if label else None
    if isinstance(item, Mapping):
        label = str(item.get("label") or "").strip()
        url = str(item.get("url") or "").strip() or None
        if not label and url:
            label = url
        return Citation(label, url) if label else None
    return None


def render_citations(citations: Sequence[Citation]) -> Text:
    """Build a Rich ``Text`` with one hyperlink per citation."""

    text = Text()
    for position, citation in enumerate(citations):
        if position:
            text.append(" · ", style="dim")
        target = citation.target
        if target:
            text.append(citation.label, style=f"link {target} underline")
        else:
            text.append(citation.label, style="italic")
    return text
