from __future__ import annotations

import csv
import logging
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, TextIO, Tuple, Union

from .errors import ConfigError, InvalidIdentifierError

STDIN_SENTINEL = "-"
DRUID_PATTERN = re.compile(r"^(?:druid:)?([a-z]{2}[0-9]{3}[a-z]{2}[0-9]{4})$")


@dataclass(frozen=True)
class MergePlanRow:
    primary: str
    secondaries: Tuple[str, ...]
    line_number: int


def normalize_druid(value: str) -> str:
    match = DRUID_PATTERN.match(value.strip())
    if not match:
        raise InvalidIdentifierError(f"Not a valid druid: {value!r}")
    return f"druid:{match.group(1)}"


def bare_druid(value: str) -> str:
    return normalize_druid(value).split(":", 1)[1]


def read_identifiers(
    path: Union[str, Path],
    *,
    skip_blank: bool = True,
    stdin: Optional[TextIO] = None,
) -> List[str]:
    """Return identifiers from `path` (or stdin for ``-``), one per line.

    Lines are stripped but never reordered or de-duplicated. Blank lines are
    dropped unless `skip_blank` is False, in which case they are returned as
    empty identifiers and fail later as invalid children.
    """
    if str(path) == STDIN_SENTINEL:
        logging.debug("Reading identifiers from standard input")
        lines = (stdin or sys.stdin).read().splitlines()
    else:
        lines = _read_input_file(Path(path)).splitlines()

    identifiers = [line.strip() for line in lines]
    if skip_blank:
        identifiers = [identifier for identifier in identifiers if identifier]
    logging.debug("Read %d identifier(s) from %s", len(identifiers), path)
    return identifiers


def read_merge_plan(path: Union[str, Path]) -> List[MergePlanRow]:
    text = _read_input_file(Path(path))
    rows: List[MergePlanRow] = []
    for line_number, row in enumerate(csv.reader(text.splitlines()), start=1):
        cells = [cell.strip() for cell in row]
        if not any(cells) or cells[0].startswith("#"):
            continue
        primary, secondaries = cells[0], tuple(cell for cell in cells[1:] if cell)
        if not secondaries:
            raise ConfigError(f"{path}:{line_number}: no secondary objects listed for {primary}")
        rows.append(MergePlanRow(primary=primary, secondaries=secondaries, line_number=line_number))
    if not rows:
        raise ConfigError(f"Merge plan lists no objects: {path}")
    return rows


def _read_input_file(path: Path) -> str:
    path = path.expanduser()
    if not path.is_file():
        raise ConfigError(f"Input file does not exist: {path}")
    if path.stat().st_size == 0:
        raise ConfigError(f"Input file is empty: {path}")
    return path.read_text(encoding="utf-8")
