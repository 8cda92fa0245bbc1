"""GFF handling for intron evidence and annotation attributes.

Intron shards are GFF files with ``#`` header lines followed by rows of
at least 7 tab-separated columns. Column 6 (score) carries the number of
supporting reads and column 7 the strand. Coordinates follow the
evidence convention: ``start`` is the first intronic base (1-based) and
``end`` is the first exonic base after the intron.

The attribute helpers are shared with the attribute table builder.

Example:
    >>> from evidenceforge.io.gff import read_intron_file
    >>> headers, records = read_intron_file("introns.gff")
    >>> for rec in records:
    ...     print(rec.seqid, rec.start, rec.end, rec.count)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple, TextIO

from evidenceforge.exceptions import IntronFormatError, ShardFormatError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# GFF column indices
COL_SEQID = 0
COL_SOURCE = 1
COL_TYPE = 2
COL_START = 3
COL_END = 4
COL_SCORE = 5
COL_STRAND = 6
COL_PHASE = 7
COL_ATTRIBUTES = 8

MIN_INTRON_COLUMNS = 7

INTRON_SOURCE = "RNAseq"
FEATURE_INTRON = "intron"
VALID_STRANDS = frozenset({"+", "-", "."})

FASTA_DIRECTIVE = "##FASTA"


# =============================================================================
# Data Structures
# =============================================================================


class IntronKey(NamedTuple):
    """Identity of a junction: one per distinct (seqid, start, end, strand)."""

    seqid: str
    start: int
    end: int
    strand: str


class IntronRecord(NamedTuple):
    """One intron row with its read support.

    Attributes:
        seqid: Chromosome/contig identifier.
        start: First intronic base (1-based).
        end: First exonic base after the intron (1-based).
        strand: "+", "-" or ".".
        count: Number of supporting reads.
    """

    seqid: str
    start: int
    end: int
    strand: str
    count: int

    @property
    def key(self) -> IntronKey:
        """Junction identity, without the count."""
        return IntronKey(self.seqid, self.start, self.end, self.strand)

    @property
    def length(self) -> int:
        """Intron length in base pairs."""
        return self.end - self.start

    def to_line(self) -> str:
        """Format as a 9-column GFF row (without newline)."""
        return format_intron_line(self.seqid, self.start, self.end, self.strand, self.count)


# =============================================================================
# Intron Rows
# =============================================================================


def format_intron_line(seqid: str, start: int, end: int, strand: str, count: int) -> str:
    """Format an intron as a GFF row."""
    return f"{seqid}\t{INTRON_SOURCE}\t{FEATURE_INTRON}\t{start}\t{end}\t{count}\t{strand}\t.\t."


def parse_intron_line(
    line: str,
    path: Path | str = "<string>",
    line_number: int = 0,
) -> IntronRecord:
    """Parse one intron GFF row.

    Args:
        line: Row without trailing newline.
        path: Source file, for error messages.
        line_number: 1-based line number, for error messages.

    Returns:
        Parsed IntronRecord.

    Raises:
        ShardFormatError: On too few columns, non-numeric coordinates or
            count, or an unknown strand.
    """
    parts = line.split("\t")
    if len(parts) < MIN_INTRON_COLUMNS:
        raise ShardFormatError(
            path, line_number, line,
            f"expected at least {MIN_INTRON_COLUMNS} columns, found {len(parts)}",
        )

    try:
        start = int(parts[COL_START])
        end = int(parts[COL_END])
        count = int(parts[COL_SCORE])
    except ValueError as e:
        raise ShardFormatError(path, line_number, line, "non-numeric field") from e

    strand = parts[COL_STRAND]
    if strand not in VALID_STRANDS:
        raise ShardFormatError(path, line_number, line, f"invalid strand {strand!r}")

    return IntronRecord(parts[COL_SEQID], start, end, strand, count)


def iter_intron_file(path: Path | str) -> Iterator[tuple[str | None, IntronRecord | None]]:
    """Stream an intron GFF file.

    Reading stops at a ``##FASTA`` directive. A failure on the first data
    row is reported as IntronFormatError, since it usually means the file
    is not an intron file at all.

    Yields:
        (header_line, None) for ``#`` lines and (None, record) for rows.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ShardFormatError: On a malformed row.
    """
    path = Path(path)
    seen_data = False
    with open(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip("\n\r")
            if not line:
                continue
            if line.startswith(FASTA_DIRECTIVE):
                break
            if line.startswith("#"):
                yield line, None
                continue

            try:
                record = parse_intron_line(line, path, line_number)
            except ShardFormatError as e:
                if seen_data:
                    raise
                raise IntronFormatError(path, line_number, line, e.reason) from e
            seen_data = True
            yield None, record


def read_intron_file(path: Path | str) -> tuple[list[str], list[IntronRecord]]:
    """Read a whole intron GFF file.

    Returns:
        Tuple of (header lines, records in file order).
    """
    headers: list[str] = []
    records: list[IntronRecord] = []
    for header, record in iter_intron_file(path):
        if header is not None:
            headers.append(header)
        else:
            records.append(record)
    return headers, records


def write_intron_records(handle: TextIO, records: Iterable[IntronRecord]) -> int:
    """Write intron rows to an open handle.

    Returns:
        Number of rows written.
    """
    n = 0
    for record in records:
        handle.write(record.to_line() + "\n")
        n += 1
    return n


def write_intron_file(
    path: Path | str,
    records: Iterable[IntronRecord],
    headers: Iterable[str] = (),
) -> int:
    """Write an intron GFF file.

    Args:
        path: Output path.
        records: Records in output order.
        headers: Header lines written before the rows.

    Returns:
        Number of rows written.
    """
    with open(path, "w") as f:
        for header in headers:
            f.write(header + "\n")
        n = write_intron_records(f, records)

    logger.debug(f"Wrote {n} introns to {path}")
    return n


# =============================================================================
# Attributes
# =============================================================================


def parse_attributes(attr_string: str) -> dict[str, str]:
    """Parse a GFF3 attribute string into a dictionary.

    Args:
        attr_string: Semicolon-separated key=value pairs.

    Returns:
        Dictionary of attribute key-value pairs, in file order.
    """
    attributes: dict[str, str] = {}
    if not attr_string or attr_string == ".":
        return attributes

    for item in attr_string.split(";"):
        item = item.strip()
        if not item or "=" not in item:
            continue
        key, value = item.split("=", 1)
        value = value.replace("%3B", ";").replace("%3D", "=").replace("%26", "&")
        value = value.replace("%2C", ",")
        attributes[key] = value

    return attributes


def iter_features(
    path: Path | str,
    feature_type: str | None = None,
) -> Iterator[tuple[list[str], dict[str, str]]]:
    """Stream features from a GFF3 file.

    Args:
        path: GFF3 file.
        feature_type: Only yield features of this type (column 3).

    Yields:
        (columns, attributes) for each feature row. Rows with fewer
        than 9 columns are skipped with a warning.
    """
    path = Path(path)
    with open(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip("\n\r")
            if not line:
                continue
            if line.startswith(FASTA_DIRECTIVE):
                break
            if line.startswith("#"):
                continue

            parts = line.split("\t")
            if len(parts) < 9:
                logger.warning(f"{path}:{line_number}: skipping row with {len(parts)} columns")
                continue
            if feature_type is not None and parts[COL_TYPE] != feature_type:
                continue

            yield parts, parse_attributes(parts[COL_ATTRIBUTES])
