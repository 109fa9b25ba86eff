"""
data model for memo notes and display settings
"""

import time
from dataclasses import dataclass, replace
from pathlib import Path

from pydantic import BaseModel, ConfigDict, PositiveInt

import config


def now_millis() -> int:
    """
    Current wall clock time as epoch milliseconds.
    """
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class Note:
    """
    Represents one memo with a title, content and two timestamps.
    The id is assigned by the store on first insert.
    """

    title: str
    content: str
    created_date: int
    modified_date: int
    id: int | None = None

    @classmethod
    def new(cls, title: str, content: str) -> "Note":
        """
        build an unsaved note stamped with the current time
        """
        stamp = now_millis()
        return cls(title=title, content=content, created_date=stamp, modified_date=stamp)

    def is_persisted(self) -> bool:
        return self.id is not None

    def edited(self, title: str, content: str) -> "Note":
        """
        copy of this note with new text and a fresh modified date.
        id and created date carry over.
        """
        return replace(self, title=title, content=content, modified_date=now_millis())


class FontSettings(BaseModel):
    """
    Title and content font sizes shown by the list and editor.
    """

    model_config = ConfigDict(frozen=True)

    title_size: PositiveInt = config.DEFAULT_TITLE_FONT_SIZE
    content_size: PositiveInt = config.DEFAULT_CONTENT_FONT_SIZE


@dataclass(frozen=True)
class AppContext:
    """
    Execution context handed in by the host environment.
    """

    data_dir: Path

    @classmethod
    def default(cls) -> "AppContext":
        return cls(data_dir=Path(config.DATA_DIR))

    def path_for(self, name: str) -> Path:
        return self.data_dir / name
