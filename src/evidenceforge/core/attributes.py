"""Flatten GFF attributes into a table.

Annotation features carry evidence scores as free-form attributes
(``tie=0.8;tpc=1.0;...``). The table collects them per feature ID with
columns discovered as they appear; features that lack a column get the
missing sentinel.

Example:
    >>> from evidenceforge.core.attributes import AttributeTable
    >>> table = AttributeTable.from_gff("annotation.gff", feature_type="mRNA")
    >>> table.write_tsv("attributes.tsv")
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from evidenceforge.io.gff import COL_END, COL_SEQID, COL_START, COL_STRAND, iter_features

logger = logging.getLogger(__name__)

DEFAULT_MISSING = "NA"
DEFAULT_ID_KEY = "ID"


class AttributeTable:
    """Feature ID -> attribute key -> value.

    Attributes:
        missing: Value reported for absent attributes.
        columns: Attribute keys in order of first appearance.
    """

    def __init__(self, missing: str = DEFAULT_MISSING) -> None:
        self.missing = missing
        self.columns: list[str] = []
        self._rows: dict[str, dict[str, str]] = {}

    @classmethod
    def from_gff(
        cls,
        path: Path | str,
        feature_type: str = "mRNA",
        id_key: str = DEFAULT_ID_KEY,
        missing: str = DEFAULT_MISSING,
        with_location: bool = False,
    ) -> AttributeTable:
        """Build a table from the features of one type in a GFF3 file.

        Args:
            path: GFF3 file.
            feature_type: Feature type (column 3) to collect.
            id_key: Attribute naming the feature.
            missing: Missing sentinel.
            with_location: Add seqid, start, end and strand columns.

        Returns:
            Filled table. Features without ``id_key`` are skipped.
        """
        table = cls(missing)
        skipped = 0
        for parts, attributes in iter_features(path, feature_type):
            feature_id = attributes.pop(id_key, None)
            if feature_id is None:
                skipped += 1
                continue
            if with_location:
                location = {
                    "seqid": parts[COL_SEQID],
                    "start": parts[COL_START],
                    "end": parts[COL_END],
                    "strand": parts[COL_STRAND],
                }
                attributes = {**location, **attributes}
            table.add(feature_id, attributes)

        if skipped:
            logger.warning(f"Skipped {skipped} {feature_type} features without {id_key}")
        return table

    def add(self, feature_id: str, attributes: dict[str, str]) -> None:
        """Add or extend a feature's row; new keys become new columns."""
        row = self._rows.setdefault(feature_id, {})
        for key, value in attributes.items():
            if key not in row and key not in self.columns:
                self.columns.append(key)
            row[key] = value

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, feature_id: str) -> bool:
        return feature_id in self._rows

    def get(self, feature_id: str, key: str) -> str:
        """One cell; the missing sentinel if absent."""
        return self._rows.get(feature_id, {}).get(key, self.missing)

    def rows(self) -> list[list[str]]:
        """Rows in insertion order, backfilled to the full column set."""
        return [
            [feature_id] + [row.get(key, self.missing) for key in self.columns]
            for feature_id, row in self._rows.items()
        ]

    def write_tsv(self, path: Path | str, id_header: str = DEFAULT_ID_KEY) -> int:
        """Write the table as TSV.

        Returns:
            Number of rows written.
        """
        columns = [id_header, *self.columns]
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(
                f, fieldnames=columns, delimiter="\t", restval=self.missing, lineterminator="\n"
            )
            writer.writeheader()
            for feature_id, row in self._rows.items():
                writer.writerow({**row, id_header: feature_id})
        return len(self._rows)
