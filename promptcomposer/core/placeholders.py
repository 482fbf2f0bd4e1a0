# promptcomposer/core/placeholders.py
"""
Placeholder grammar shared by the template flattener and the block parser.

A placeholder is ``{{NAME}}`` or ``{{NAME=VALUE}}``. NAME may contain letters,
digits, ``_``, ``-`` and ``.``; whitespace just inside the braces is tolerated.
VALUE runs up to the first closing brace and is kept verbatim.
"""
import re
from dataclasses import dataclass
from typing import Iterator, Optional

PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_\-.]+)\s*(?:=([^}]*))?\}\}")

FILE_BLOCK = "FILE_BLOCK"
TEXT_BLOCK = "TEXT_BLOCK"
TEMPLATE_BLOCK = "TEMPLATE_BLOCK"
PROMPT_RESPONSE = "PROMPT_RESPONSE"

# Never looked up as templates.
RESERVED_NAMES = frozenset({FILE_BLOCK, TEXT_BLOCK, TEMPLATE_BLOCK})

@dataclass(frozen=True)
class Placeholder:
    text: str
    name: str
    value: Optional[str]
    start: int
    end: int

    @classmethod
    def from_match(cls, match: "re.Match[str]") -> "Placeholder":
        return cls(text=match.group(0), name=match.group(1), value=match.group(2),
                   start=match.start(), end=match.end())

def search_placeholder(text: str, pos: int = 0) -> Optional[Placeholder]:
    """First placeholder at or after `pos`, or None."""
    match = PLACEHOLDER_RE.search(text, pos)
    return Placeholder.from_match(match) if match else None

def iter_placeholders(text: str) -> Iterator[Placeholder]:
    for match in PLACEHOLDER_RE.finditer(text):
        yield Placeholder.from_match(match)

def format_placeholder(name: str, value: Optional[str] = None) -> str:
    if value is None:
        return "{{" + name + "}}"
    return "{{" + name + "=" + value + "}}"

def replace_named(text: str, name: str, replacement: str) -> str:
    """Replace every parameterless `{{name}}` placeholder by `replacement`."""
    # A function replacement keeps backslashes in `replacement` literal.
    return PLACEHOLDER_RE.sub(
        lambda m: replacement if m.group(1) == name and m.group(2) is None else m.group(0), text)
