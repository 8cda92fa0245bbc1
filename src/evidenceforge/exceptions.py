"""Exceptions raised by the evidence aggregation pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable


class EvidenceForgeError(Exception):
    """Base exception for EvidenceForge errors."""


class ShardFormatError(EvidenceForgeError, ValueError):
    """A shard file contains a row that cannot be parsed.

    Raised for rows with too few columns or non-numeric coordinate and
    count fields. A malformed row aborts the whole merge.
    """

    def __init__(self, path: Path | str, line_number: int, line: str, reason: str) -> None:
        self.path = Path(path)
        self.line_number = line_number
        self.line = line
        self.reason = reason
        super().__init__(f"{self.path}:{line_number}: {reason}: {line[:80]!r}")


class IntronFormatError(ShardFormatError):
    """The first data line of a junction count file is not an intron row."""


class ConfigurationError(EvidenceForgeError):
    """Invalid configuration file or values."""

    def __init__(self, message: str, config_path: Path | None = None) -> None:
        self.config_path = config_path
        super().__init__(message)


class UnknownReferenceError(EvidenceForgeError, KeyError):
    """An alignment names a reference that the loaded genome lacks.

    Usually the FASTA given for the mismatch check is not the one the
    reads were aligned to.
    """

    def __init__(self, reference_name: str, known: Iterable[str]) -> None:
        self.reference_name = reference_name
        self.n_known = len(list(known))
        super().__init__(
            f"Reference {reference_name!r} of the alignments is not in the genome "
            f"({self.n_known} references); is the FASTA the one the reads were aligned to?"
        )

    def __str__(self) -> str:
        return str(self.args[0])
