"""Configuration management for EvidenceForge.

This module handles loading, validating, and providing access to
EvidenceForge configuration settings. Configuration can come from:
- Default values
- Configuration files (YAML)
- Command-line arguments (which override file values)

Example:
    >>> from evidenceforge.config import Config
    >>> config = Config.load("evidenceforge.yaml")
    >>> config.filter.min_quality
    40
"""

from enum import Enum
from pathlib import Path
from typing import Any

import attrs
import yaml

from evidenceforge.exceptions import ConfigurationError

# =============================================================================
# Default Configuration Values
# =============================================================================

# Read filter defaults
DEFAULT_MIN_QUALITY = 40
DEFAULT_POSITIONS_AROUND_SPLICE_SITE = 10
DEFAULT_MAX_MISMATCHES = 3

# Splice statistics defaults
DEFAULT_MIN_INTRON_LENGTH = 0
DEFAULT_SENSITIVITY = 0.0

# Extraction defaults
DEFAULT_MIN_CONTEXT = 1

# Denoising defaults
DEFAULT_MAX_INTRON_LENGTH = 15_000
DEFAULT_MIN_EXPRESSION = 0.01
DEFAULT_DENOISE_CONTEXT = 10

# Parallel processing defaults
DEFAULT_N_WORKERS = 1


class Stranded(Enum):
    """RNA-seq library strandedness.

    FR_FIRST_STRAND: the first read of a pair (or the only read of
    single-end data) lies on the reverse strand of the transcript, as in
    Illumina TruSeq. FR_SECOND_STRAND: the first read lies on the
    transcript strand.
    """

    FR_UNSTRANDED = "FR_UNSTRANDED"
    FR_FIRST_STRAND = "FR_FIRST_STRAND"
    FR_SECOND_STRAND = "FR_SECOND_STRAND"


def _optional_non_negative(instance: Any, attribute: attrs.Attribute, value: Any) -> None:
    if value is not None and value < 0:
        raise ValueError(f"{attribute.name} must be >= 0, got {value}")


# =============================================================================
# Configuration Classes
# =============================================================================


@attrs.define
class FilterConfig:
    """Configuration for read filtering.

    Attributes:
        min_quality: Reads with a lower mapping quality are rejected.
        positions_around_splice_site: Bases checked at each block edge of
            spliced reads. 0 disables the mismatch check.
        max_mismatches: Mismatches tolerated around splits.
        genome: FASTA used for the mismatch check.
    """

    min_quality: int = attrs.field(default=DEFAULT_MIN_QUALITY, validator=attrs.validators.ge(0))
    positions_around_splice_site: int = attrs.field(
        default=DEFAULT_POSITIONS_AROUND_SPLICE_SITE, validator=attrs.validators.ge(0)
    )
    max_mismatches: int | None = attrs.field(
        default=DEFAULT_MAX_MISMATCHES, validator=_optional_non_negative
    )
    genome: Path | None = attrs.field(
        default=None, converter=attrs.converters.optional(Path)
    )

    @property
    def checks_mismatches(self) -> bool:
        """Whether the splice-site mismatch check is active."""
        return self.genome is not None and self.positions_around_splice_site > 0


@attrs.define
class SpliceConfig:
    """Configuration for split-read statistics.

    Attributes:
        min_intron_length: Gaps of at most this length are not introns.
        sensitivity: Factor for the long-intron support rule. 0 disables it.
    """

    min_intron_length: int = attrs.field(
        default=DEFAULT_MIN_INTRON_LENGTH, validator=attrs.validators.ge(0)
    )
    sensitivity: float = attrs.field(
        default=DEFAULT_SENSITIVITY, validator=attrs.validators.ge(0.0)
    )


@attrs.define
class ExtractionConfig:
    """Configuration for per-shard evidence extraction.

    Attributes:
        stranded: Library strandedness.
        use_secondary: Keep secondary and supplementary alignments.
        coverage: Write coverage tracks in addition to introns.
        max_coverage: Cap reported depth at this value.
        min_context: Minimum matched block length of the best split read.
        repositioning: TSV mapping split references to original ones.
    """

    stranded: Stranded = attrs.field(default=Stranded.FR_UNSTRANDED, converter=Stranded)
    use_secondary: bool = True
    coverage: bool = True
    max_coverage: int | None = attrs.field(default=None, validator=_optional_non_negative)
    min_context: int = attrs.field(default=DEFAULT_MIN_CONTEXT, validator=attrs.validators.ge(1))
    repositioning: Path | None = attrs.field(
        default=None, converter=attrs.converters.optional(Path)
    )


@attrs.define
class DenoiseConfig:
    """Configuration for intron denoising.

    Attributes:
        max_intron_length: Longer introns are removed.
        min_expression: Minimum reads relative to flanking coverage.
        context: Flank size used to measure exon coverage.
    """

    max_intron_length: int = DEFAULT_MAX_INTRON_LENGTH
    min_expression: float = attrs.field(
        default=DEFAULT_MIN_EXPRESSION,
        validator=[attrs.validators.ge(0.0), attrs.validators.le(1.0)],
    )
    context: int = attrs.field(default=DEFAULT_DENOISE_CONTEXT, validator=attrs.validators.ge(0))


@attrs.define
class ParallelConfig:
    """Configuration for parallel processing.

    Attributes:
        n_workers: Number of parallel workers.
        backend: Execution backend (serial, threads, processes).
    """

    n_workers: int = attrs.field(default=DEFAULT_N_WORKERS, validator=attrs.validators.ge(1))
    backend: str = attrs.field(
        default="threads",
        validator=attrs.validators.in_(["serial", "threads", "processes"]),
    )


@attrs.define
class Config:
    """Main configuration container for EvidenceForge.

    Attributes:
        filter: Read filter configuration.
        splice: Split-read statistics configuration.
        extraction: Extraction configuration.
        denoise: Denoising configuration.
        parallel: Parallel processing configuration.
    """

    filter: FilterConfig = attrs.Factory(FilterConfig)
    splice: SpliceConfig = attrs.Factory(SpliceConfig)
    extraction: ExtractionConfig = attrs.Factory(ExtractionConfig)
    denoise: DenoiseConfig = attrs.Factory(DenoiseConfig)
    parallel: ParallelConfig = attrs.Factory(ParallelConfig)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from a YAML file.

        Each top-level mapping of the file is one section (``filter``,
        ``splice``, ``extraction``, ``denoise``, ``parallel``).
        Missing sections and keys keep their defaults.

        Args:
            path: Path to configuration file. If None, returns default
                configuration.

        Returns:
            Loaded configuration object.

        Raises:
            FileNotFoundError: If configuration file doesn't exist.
            ConfigurationError: If configuration file is invalid.
        """
        if path is None:
            return cls()

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", path) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping of sections in {path}", path)

        sections = {
            "filter": FilterConfig,
            "splice": SpliceConfig,
            "extraction": ExtractionConfig,
            "denoise": DenoiseConfig,
            "parallel": ParallelConfig,
        }
        unknown = set(data) - set(sections)
        if unknown:
            raise ConfigurationError(f"Unknown configuration sections: {sorted(unknown)}", path)

        kwargs = {}
        for name, section_cls in sections.items():
            try:
                kwargs[name] = section_cls(**data.get(name, {}))
            except (TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid [{name}] section: {e}", path) from e

        return cls(**kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation of configuration with enums and
            paths converted to strings.
        """

        def serialize(inst: Any, field: attrs.Attribute, value: Any) -> Any:
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, Path):
                return str(value)
            return value

        return attrs.asdict(self, value_serializer=serialize)

    def save(self, path: Path | str) -> None:
        """Save configuration to a YAML file that ``load`` reads back.

        Args:
            path: Path to save configuration file.
        """
        with open(path, "w") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)
