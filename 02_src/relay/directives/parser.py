"""Media directives embedded in completion output.

The completion service asks for a catalog item by writing a line::

    [MEDIA: 3]
    optional one-line caption

When the item is delivered, the agent turn stored in history starts with a
marker line ``[media-sent #3: <description>]``. The marker syntax differs
from the directive syntax so that the agent's own history is never read
back as a fresh request.
"""

import re
from typing import Iterable

from ..models import Directive, ParsedResponse

DIRECTIVE_PATTERN = re.compile(r"\[MEDIA:\s*(.*?)\]", re.IGNORECASE)
MARKER_PATTERN = re.compile(r"\[media-sent #([^:\]]+)(?::[^\]]*)?\]", re.IGNORECASE)


def media_marker(ref: str, description: str) -> str:
    """History marker recording that media `ref` was delivered."""
    return f"[media-sent #{ref}: {description}]"


def _normalize_ref(raw: str) -> str:
    return raw.strip().lstrip("#").strip()


def parse_directives(text: str) -> ParsedResponse:
    """Split completion output into prose and media directives.

    Non-empty, non-directive lines are kept verbatim and in order. The line
    right after a directive is its caption unless it is blank, another
    directive or a marker. A reference repeated within one response is kept once.
    Marker lines echoed back by the model are dropped from the prose.
    """
    if not DIRECTIVE_PATTERN.search(text) and not MARKER_PATTERN.search(text):
        return ParsedResponse(prose=text, directives=[])

    lines = text.split("\n")
    prose: list[str] = []
    directives: list[Directive] = []
    seen: set[str] = set()

    i = 0
    while i < len(lines):
        line = lines[i]
        match = DIRECTIVE_PATTERN.search(line)

        if match:
            caption = None
            if i + 1 < len(lines):
                next_line = lines[i + 1].strip()
                if (
                    next_line
                    and not DIRECTIVE_PATTERN.search(next_line)
                    and not MARKER_PATTERN.search(next_line)
                ):
                    caption = next_line
                    i += 1

            ref = _normalize_ref(match.group(1))
            if ref and ref not in seen:
                seen.add(ref)
                directives.append(Directive(ref=ref, caption=caption))
        elif MARKER_PATTERN.search(line):
            pass
        elif line.strip():
            prose.append(line)

        i += 1

    return ParsedResponse(prose="\n".join(prose).strip(), directives=directives)


def filter_unsent(
    directives: Iterable[Directive], sent_refs: set[str]
) -> tuple[list[Directive], list[Directive]]:
    """Partition directives into (to send, already sent), preserving order."""
    pending: list[Directive] = []
    skipped: list[Directive] = []
    for directive in directives:
        if directive.ref in sent_refs:
            skipped.append(directive)
        else:
            pending.append(directive)
    return pending, skipped
