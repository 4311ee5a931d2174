import gzip
import logging
from typing import Iterator, List, Optional

logger = logging.getLogger(__name__)


def read_lines(filename: str, chunk_size: int = 1000, column: Optional[int] = None) -> Iterator[List[str]]:
    """Read the non-empty lines of a text file in chunks.

    Files ending in ``.gz`` are decompressed on the fly. Trailing newlines
    are stripped; blank lines are skipped.

    Args:
        filename: Path to a plain or gzipped text file
        chunk_size: Maximum number of lines per yielded chunk
        column: If given, yield only this zero-based tab-separated field.
                Lines with fewer fields are skipped.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be positive")
    if column is not None and column < 0:
        raise ValueError(f"column must be non-negative, got {column}")

    # Open with appropriate method
    opener = gzip.open if filename.endswith(".gz") else open
    records = []
    skipped = 0
    with opener(filename, "rt", encoding="utf-8") as file:
        for line in file:
            line = line.rstrip("\r\n")
            if not line:
                continue
            if column is not None:
                fields = line.split("\t")
                if column >= len(fields):
                    skipped += 1
                    continue
                line = fields[column]
            records.append(line)
            if len(records) >= chunk_size:
                yield records
                records = []
        if records:  # Yield any remaining records
            yield records
    if skipped:
        logger.warning("%s: skipped %d lines with fewer than %d columns", filename, skipped, column + 1)
