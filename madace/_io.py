"""
_io.py - UTF-8 text reads that fail with the offending path.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from madace.errors import ParseError

PathLike = Union[str, Path]


def read_text(path: PathLike, newline: Optional[str] = None) -> str:
    """Read a UTF-8 text file.

    Raises:
        ParseError: If the bytes are not valid UTF-8.
        OSError: If the file cannot be opened.
    """
    file_path = Path(path)
    try:
        with open(file_path, "r", encoding="utf-8", newline=newline) as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise ParseError(file_path, f"Invalid UTF-8 at byte {e.start}: {e.reason}") from e
