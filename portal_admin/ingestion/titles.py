"""Filename heuristics for staged batch files."""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Optional


_EXTENSION_PATTERN = re.compile(r"\.[^/.]+$")
_SEPARATOR_PATTERN = re.compile(r"[-_]")
_CAMEL_BOUNDARY_PATTERN = re.compile(r"([a-z])([A-Z])")


def title_from_filename(filename: str) -> str:
    """Turn ``visum_palm_user_manual_v2.pdf`` into ``Visum Palm User Manual V2``."""

    without_extension = _EXTENSION_PATTERN.sub("", filename)
    spaced = _SEPARATOR_PATTERN.sub(" ", without_extension)
    spaced = _CAMEL_BOUNDARY_PATTERN.sub(r"\1 \2", spaced)
    title = " ".join(word[:1].upper() + word[1:].lower() for word in spaced.split())
    return title or filename


def detect_format(filename: str) -> str:
    name = filename.strip().rsplit("/", 1)[-1]
    if "." not in name:
        return ""
    return name.rsplit(".", 1)[1].upper()


@dataclass
class PendingFile:
    """A file staged for batch upload; the title stays editable until commit."""

    filename: str
    content: bytes
    content_type: Optional[str] = None
    title: str = ""
    format: str = field(default="")

    def __post_init__(self) -> None:
        if not self.title.strip():
            self.title = title_from_filename(self.filename)
        else:
            self.title = self.title.strip()
        if not self.format:
            self.format = detect_format(self.filename)

    @property
    def size_bytes(self) -> int:
        return len(self.content)
