"""CSV upload reader.

Turns an uploaded CSV (bytes) into an ordered list of string-keyed rows.
The header row defines the keys; empty lines are skipped, but a row of empty
fields is kept so it can be reported as a reject.
"""

from __future__ import annotations

import csv
import io
import logging
from typing import Dict, List

log = logging.getLogger("trancheready.aml.csv_reader")


class CSVParseError(ValueError):
    pass


def read_csv_rows(data: bytes, *, source: str = "upload") -> List[Dict[str, str]]:
    """Parse CSV bytes into a list of dicts keyed by the header row.

    Raises:
        CSVParseError: undecodable bytes, malformed CSV, or a record whose
            field count differs from the header.
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise CSVParseError(f"{source}: file is not valid UTF-8 ({e.reason} at byte {e.start})") from e

    reader = csv.reader(io.StringIO(text, newline=""))
    rows: List[Dict[str, str]] = []
    header: List[str] = []
    try:
        for record in reader:
            if not record or record == [""]:
                continue
            if not header:
                header = record
                continue
            if len(record) != len(header):
                raise CSVParseError(
                    f"{source}: invalid record length on line {reader.line_num}: "
                    f"expected {len(header)} fields, got {len(record)}"
                )
            rows.append(dict(zip(header, record)))
    except csv.Error as e:
        raise CSVParseError(f"{source}: line {reader.line_num}: {e}") from e

    log.info("Parsed %s: %d columns, %d rows", source, len(header), len(rows))
    return rows
