"""Command-line interface for EvidenceForge.

This module provides the main entry point for the evidenceforge CLI tool.
It uses Click to define commands for each step of an evidence run.

Commands:
    extract: Extract introns and coverage from RNA-seq alignments
    merge-coverage: Merge coverage shards into one bedGraph
    merge-introns: Merge intron shards into one GFF
    splice-stats: Gap-length statistics of split reads
    intron-stats: Splice-site dinucleotide statistics of intron files
    denoise: Remove long or weakly expressed introns
    attributes: Flatten GFF attributes into a table
    tasks: Write per-BAM extraction tasks for HyperShell/GNU Parallel

Example:
    $ evidenceforge --help
    $ evidenceforge extract sample.bam -o shards/sample --genome genome.fa
    $ evidenceforge merge-introns introns.gff shards/*/introns.gff
    $ evidenceforge merge-coverage coverage.bedgraph shards/*/coverage.bedgraph
    $ evidenceforge intron-stats --genome genome.fa introns.gff
"""

from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from evidenceforge.utils.logging import setup_logging

# Initialize rich console for pretty output
console = Console()

STRANDED_CHOICES = ["FR_UNSTRANDED", "FR_FIRST_STRAND", "FR_SECOND_STRAND"]


@click.group()
@click.version_option(prog_name="evidenceforge")
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output.")
@click.option("-q", "--quiet", is_flag=True, help="Suppress non-error output.")
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write debug logs to this file.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, quiet: bool, log_file: Optional[Path]) -> None:
    """EvidenceForge: RNA-seq evidence tracks for genome annotation.

    EvidenceForge extracts splice junctions and read coverage from RNA-seq
    alignments, merges per-shard results into genome-wide tracks, and
    reports splice-site statistics for quality control.
    """
    # Ensure context object exists
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    verbosity = 0 if quiet else (2 if verbose else 1)
    setup_logging(verbosity=verbosity, log_file=log_file)


def _fail(error: Exception, verbose: bool) -> None:
    """Print an error and exit with status 1."""
    console.print(f"[red]Error:[/red] {error}")
    if verbose:
        console.print_exception()
    raise SystemExit(1)


# =============================================================================
# extract command
# =============================================================================


@main.command()
@click.argument("alignments", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(path_type=Path),
    required=True,
    help="Directory for introns.gff and coverage bedGraph(s).",
)
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="YAML configuration file. Command-line options override it.",
)
@click.option(
    "--genome",
    type=click.Path(exists=True, path_type=Path),
    help="Reference FASTA for the mismatch check around splits.",
)
@click.option("--min-quality", type=int, help="Minimum mapping quality. [default: 40]")
@click.option(
    "--positions-around-splice-site",
    type=int,
    help="Bases checked at each block edge of split reads. [default: 10]",
)
@click.option("--max-mismatches", type=int, help="Mismatches tolerated around splits. [default: 3]")
@click.option("--min-intron-length", type=int, help="Shorter gaps are not introns. [default: 0]")
@click.option(
    "--sensitivity",
    type=float,
    help="Long-intron support factor; 0 disables the rule. [default: 0]",
)
@click.option(
    "--stranded",
    type=click.Choice(STRANDED_CHOICES),
    help="Library strandedness. [default: FR_UNSTRANDED]",
)
@click.option(
    "--secondary/--no-secondary",
    default=None,
    help="Use secondary and supplementary alignments. [default: use]",
)
@click.option("--coverage/--no-coverage", default=None, help="Write coverage. [default: write]")
@click.option("--max-coverage", type=int, help="Cap reported depth.")
@click.option("--min-context", type=int, help="Minimum shortest block of the best read. [default: 1]")
@click.option(
    "--repositioning",
    type=click.Path(exists=True, path_type=Path),
    help="TSV of split_chr, original_chr, offset.",
)
@click.option(
    "-r",
    "--report",
    type=click.Path(path_type=Path),
    help="Write the mapping quality table as TSV.",
)
@click.pass_context
def extract(
    ctx: click.Context,
    alignments: tuple[Path, ...],
    output_dir: Path,
    config_path: Optional[Path],
    genome: Optional[Path],
    min_quality: Optional[int],
    positions_around_splice_site: Optional[int],
    max_mismatches: Optional[int],
    min_intron_length: Optional[int],
    sensitivity: Optional[float],
    stranded: Optional[str],
    secondary: Optional[bool],
    coverage: Optional[bool],
    max_coverage: Optional[int],
    min_context: Optional[int],
    repositioning: Optional[Path],
    report: Optional[Path],
) -> None:
    """Extract introns and coverage from SAM/BAM alignments.

    \b
    Output files in OUTPUT_DIR:
    - introns.gff: one row per junction with its read count
    - coverage.bedgraph (unstranded), or
      coverage_forward.bedgraph and coverage_reverse.bedgraph (stranded)

    \b
    Examples:
        $ evidenceforge extract sample.bam -o shards/sample
        $ evidenceforge extract a.bam b.bam -o out --genome genome.fa \\
            --stranded FR_FIRST_STRAND --sensitivity 1.5
    """
    from evidenceforge.config import Config
    from evidenceforge.core.extract import EvidenceExtractor, read_repositioning
    from evidenceforge.core.filters import ReadFilter
    from evidenceforge.core.splice_stats import SpliceStatistics
    from evidenceforge.io.bam import BamAlignmentSource
    from evidenceforge.io.fasta import load_genome_sequences

    verbose = ctx.obj.get("verbose", False)
    quiet = ctx.obj.get("quiet", False)

    try:
        config = Config.load(config_path)
        overrides = [
            ((config.filter, "min_quality"), min_quality),
            ((config.filter, "positions_around_splice_site"), positions_around_splice_site),
            ((config.filter, "max_mismatches"), max_mismatches),
            ((config.filter, "genome"), genome),
            ((config.splice, "min_intron_length"), min_intron_length),
            ((config.splice, "sensitivity"), sensitivity),
            ((config.extraction, "stranded"), stranded),
            ((config.extraction, "use_secondary"), secondary),
            ((config.extraction, "coverage"), coverage),
            ((config.extraction, "max_coverage"), max_coverage),
            ((config.extraction, "min_context"), min_context),
            ((config.extraction, "repositioning"), repositioning),
        ]
        for (section, name), value in overrides:
            if value is not None:
                setattr(section, name, value)

        filter_cfg = config.filter
        genome_sequences = None
        if filter_cfg.checks_mismatches:
            if not quiet:
                console.print(f"[blue]Genome:[/blue] {filter_cfg.genome}")
            genome_sequences = load_genome_sequences(filter_cfg.genome)

        read_filter = ReadFilter(
            min_quality=filter_cfg.min_quality,
            positions_around_splice_site=filter_cfg.positions_around_splice_site,
            max_mismatches=filter_cfg.max_mismatches,
            genome=genome_sequences,
        )

        splice_stats = None
        if config.splice.sensitivity > 0:
            if not quiet:
                console.print("[dim]Computing split-read statistics...[/dim]")
            sources = [BamAlignmentSource(path) for path in alignments]
            try:
                splice_stats = SpliceStatistics.from_sources(
                    config.splice.min_intron_length, config.splice.sensitivity, sources
                )
            finally:
                for source in sources:
                    source.close()

        extraction = config.extraction
        extractor = EvidenceExtractor(
            read_filter,
            stranded=extraction.stranded,
            min_intron_length=config.splice.min_intron_length,
            use_secondary=extraction.use_secondary,
            coverage=extraction.coverage,
            max_coverage=extraction.max_coverage,
            min_context=extraction.min_context,
            splice_stats=splice_stats,
            repositioning=(
                read_repositioning(extraction.repositioning) if extraction.repositioning else None
            ),
        )

        for path in alignments:
            if not quiet:
                console.print(f"[blue]Reading:[/blue] {path}")
            with BamAlignmentSource(path) as source:
                extractor.process(source)

        result = extractor.write(output_dir)

        if report:
            result.mapping_qualities.write_tsv(report)

    except Exception as e:
        _fail(e, verbose)

    if not quiet:
        counts = result.filter_counts
        console.print("")
        console.print("[bold]Extraction Summary:[/bold]")
        console.print(f"  Reads:                 {result.n_reads:,}")
        console.print(f"  Used:                  {result.n_used:,}")
        console.print(f"  Split:                 {result.n_split:,}")
        console.print(f"  Low mapping quality:   {counts.low_quality:,}")
        console.print(f"  Mismatches at splits:  {counts.mismatches:,}")
        console.print(f"  Secondary skipped:     {result.n_secondary_skipped:,}")
        console.print(f"  Introns:               {result.n_introns:,}")
        if result.min_intron_length is not None:
            console.print(
                f"  Intron lengths:        {result.min_intron_length:,} - {result.max_intron_length:,}"
            )
        for path in result.files:
            console.print(f"[green]Wrote:[/green] {path}")


# =============================================================================
# merge commands
# =============================================================================


def _merger(ctx: click.Context, threads: Optional[int], config_path: Optional[Path]):
    """ShardMerger with the worker count from --threads or the config file."""
    from evidenceforge.config import Config
    from evidenceforge.core.merge import ShardMerger
    from evidenceforge.parallel.executor import get_optimal_workers

    parallel = Config.load(config_path).parallel
    if threads is None:
        threads = parallel.n_workers
    elif threads == 0:
        threads = get_optimal_workers()
    echo = (lambda line: None) if ctx.obj.get("quiet", False) else click.echo
    return ShardMerger(n_workers=threads, echo=echo, backend=parallel.backend)


def _merge_options(func):
    """Options shared by the merge commands."""
    options = [
        click.option(
            "-t",
            "--threads",
            type=click.IntRange(min=0),
            help="Threads for per-reference compression; 0 uses every CPU. [default: 1]",
        ),
        click.option(
            "-c",
            "--config",
            "config_path",
            type=click.Path(exists=True, path_type=Path),
            help="YAML configuration file (parallel.n_workers).",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@main.command("merge-coverage")
@click.argument("output", type=click.Path(path_type=Path))
@click.argument("shards", nargs=-1, required=True, type=click.Path(path_type=Path))
@_merge_options
@click.pass_context
def merge_coverage(
    ctx: click.Context,
    output: Path,
    shards: tuple[Path, ...],
    threads: Optional[int],
    config_path: Optional[Path],
) -> None:
    """Merge bedGraph coverage SHARDS into OUTPUT.

    Depths of all shards are summed per base and written as maximal runs
    of constant depth, sorted by reference and position.
    """
    quiet = ctx.obj.get("quiet", False)
    try:
        merger = _merger(ctx, threads, config_path)
        summary = merger.merge_coverage(output, shards)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not quiet:
        console.print(
            f"[green]Wrote {summary.n_records:,} runs on {summary.n_references} references:[/green] {output}"
        )


@main.command("merge-introns")
@click.argument("output", type=click.Path(path_type=Path))
@click.argument("shards", nargs=-1, required=True, type=click.Path(path_type=Path))
@_merge_options
@click.pass_context
def merge_introns(
    ctx: click.Context,
    output: Path,
    shards: tuple[Path, ...],
    threads: Optional[int],
    config_path: Optional[Path],
) -> None:
    """Merge intron GFF SHARDS into OUTPUT.

    Counts of identical junctions (reference, start, end, strand) are
    summed. The intron length distribution is printed afterwards.
    """
    quiet = ctx.obj.get("quiet", False)
    try:
        merger = _merger(ctx, threads, config_path)
        summary = merger.merge_introns(output, shards)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not quiet:
        click.echo(summary.lengths.format())
        console.print(
            f"[green]Wrote {summary.n_records:,} introns on {summary.n_references} references:[/green] {output}"
        )


# =============================================================================
# splice-stats command
# =============================================================================


@main.command("splice-stats")
@click.argument("alignments", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("--min-intron-length", type=int, default=0, show_default=True, help="Shorter gaps are ignored.")
@click.option("--sensitivity", type=float, default=0.0, show_default=True, help="Support factor.")
@click.pass_context
def splice_stats(
    ctx: click.Context,
    alignments: tuple[Path, ...],
    min_intron_length: int,
    sensitivity: float,
) -> None:
    """Report gap-length statistics of split reads in ALIGNMENTS."""
    from evidenceforge.core.splice_stats import SpliceStatistics
    from evidenceforge.io.bam import BamAlignmentSource

    sources = []
    try:
        sources = [BamAlignmentSource(path) for path in alignments]
        stats = SpliceStatistics.from_sources(min_intron_length, sensitivity, sources)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))
    finally:
        for source in sources:
            source.close()

    console.print("[bold]Split-read statistics:[/bold]")
    console.print(f"  Reads:             {stats.n_reads:,}")
    console.print(f"  Gaps:              {stats.n_gaps:,}")
    console.print(f"  Mean read length:  {stats.mean_read_length:.2f}")
    console.print(f"  Mean gap length:   {stats.mean_gap_length:.2f}")
    console.print(f"  SD gap length:     {stats.std_gap_length:.2f}")


# =============================================================================
# intron-stats command
# =============================================================================


@main.command("intron-stats")
@click.argument("introns", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option(
    "--genome",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Reference genome FASTA file.",
)
@click.option("-o", "--output", type=click.Path(path_type=Path), help="Write the pair table as TSV.")
@click.option("--per-intron", is_flag=True, help="Log every intron with its pair (debug level).")
@click.pass_context
def intron_stats(
    ctx: click.Context,
    introns: tuple[Path, ...],
    genome: Path,
    output: Optional[Path],
    per_intron: bool,
) -> None:
    """Count splice-site dinucleotides of INTRONS against the genome."""
    from evidenceforge.core.intron_stats import IntronStatisticsReporter

    quiet = ctx.obj.get("quiet", False)
    try:
        reporter = IntronStatisticsReporter.from_fasta(genome)
        stats = reporter.report(introns, verbose=per_intron)
        if output:
            stats.write_tsv(output)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not quiet:
        table = Table(title="Splice-site pairs")
        table.add_column("Pair")
        table.add_column("Total", justify="right")
        table.add_column("Canonical", justify="right")
        for pair, total, canonical in stats.rows():
            table.add_row(pair, f"{total:,}", f"{canonical:,}")
        console.print(table)

        strands = ", ".join(f"{s}: {n:,}" for s, n in sorted(stats.strands.items()))
        console.print(f"[blue]Strands:[/blue] {strands}")
        console.print(
            f"[blue]Canonical:[/blue] {stats.n_canonical:,}/{stats.n_introns:,} "
            f"({100 * stats.canonical_fraction:.1f}%)"
        )
        if output:
            console.print(f"[green]Wrote:[/green] {output}")


# =============================================================================
# denoise command
# =============================================================================


@main.command()
@click.argument("introns", nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), required=True, help="Output intron GFF.")
@click.option("--coverage", "unstranded", type=click.Path(exists=True, path_type=Path), help="Unstranded coverage bedGraph.")
@click.option("--forward-coverage", type=click.Path(exists=True, path_type=Path), help="Forward strand coverage bedGraph.")
@click.option("--reverse-coverage", type=click.Path(exists=True, path_type=Path), help="Reverse strand coverage bedGraph.")
@click.option("--max-intron-length", type=int, default=15_000, show_default=True, help="Longer introns are removed.")
@click.option("--min-expression", type=float, default=0.01, show_default=True, help="Minimum reads relative to flanking coverage.")
@click.option("--context", type=int, default=10, show_default=True, help="Flank size for exon coverage.")
@click.pass_context
def denoise(
    ctx: click.Context,
    introns: tuple[Path, ...],
    output: Path,
    unstranded: Optional[Path],
    forward_coverage: Optional[Path],
    reverse_coverage: Optional[Path],
    max_intron_length: int,
    min_expression: float,
    context: int,
) -> None:
    """Remove long or weakly expressed INTRONS.

    Several intron files are merged before denoising.
    """
    from evidenceforge.core.coverage import CoverageAccumulator
    from evidenceforge.core.denoise import IntronDenoiser
    from evidenceforge.core.introns import IntronAccumulator

    quiet = ctx.obj.get("quiet", False)
    try:
        accumulator = IntronAccumulator()
        for path in introns:
            accumulator.read_file(path)

        tracks = {}
        for strand, path in ((".", unstranded), ("+", forward_coverage), ("-", reverse_coverage)):
            if path is not None:
                tracks[strand] = CoverageAccumulator.from_bedgraph(path)

        denoiser = IntronDenoiser(max_intron_length, min_expression, context)
        kept, summary = denoiser.denoise(accumulator, tracks)
        kept.write_gff(output)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not quiet:
        console.print(f"  Input introns:     {summary.n_input:,}")
        console.print(f"  Too long:          {summary.n_too_long:,}")
        console.print(f"  Low expression:    {summary.n_low_expression:,}")
        console.print(f"[green]Wrote {summary.n_kept:,} introns:[/green] {output}")


# =============================================================================
# attributes command
# =============================================================================


@main.command()
@click.argument("gff", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), required=True, help="Output TSV.")
@click.option("--type", "feature_type", default="mRNA", show_default=True, help="Feature type to tabulate.")
@click.option("--id-key", default="ID", show_default=True, help="Attribute naming each feature.")
@click.option("--missing", default="NA", show_default=True, help="Value for absent attributes.")
@click.option("--location", is_flag=True, help="Add seqid, start, end and strand columns.")
@click.pass_context
def attributes(
    ctx: click.Context,
    gff: Path,
    output: Path,
    feature_type: str,
    id_key: str,
    missing: str,
    location: bool,
) -> None:
    """Flatten the attributes of GFF features into a table."""
    from evidenceforge.core.attributes import AttributeTable

    try:
        table = AttributeTable.from_gff(gff, feature_type, id_key, missing, with_location=location)
        n = table.write_tsv(output, id_header=id_key)
    except Exception as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not ctx.obj.get("quiet", False):
        console.print(f"[green]Wrote {n:,} rows x {len(table.columns)} attributes:[/green] {output}")


# =============================================================================
# tasks command
# =============================================================================


@main.command()
@click.argument("alignments", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("-o", "--output", type=click.Path(path_type=Path), default="tasks.txt", show_default=True, help="Task file.")
@click.option("--shard-dir", type=click.Path(path_type=Path), default="shards", show_default=True, help="Per-BAM output directory.")
@click.option("--merge-dir", type=click.Path(path_type=Path), default="merged", show_default=True, help="Directory for merged files.")
@click.option(
    "--template",
    default="evidenceforge extract {bam} -o {output_dir}/{shard_id}",
    show_default=True,
    help="Command template ({bam}, {shard_id}, {name}, {output_dir}).",
)
@click.option("--stranded", is_flag=True, help="Shards hold forward/reverse coverage.")
@click.option("--log", "include_logging", is_flag=True, help="Redirect each task's output to a log file.")
@click.pass_context
def tasks(
    ctx: click.Context,
    alignments: tuple[Path, ...],
    output: Path,
    shard_dir: Path,
    merge_dir: Path,
    template: str,
    stranded: bool,
    include_logging: bool,
) -> None:
    """Write one extraction task per BAM plus the merge commands.

    \b
    Execute with:
        $ hs cluster tasks.txt --num-tasks 32
        $ bash tasks.merge.sh
    """
    from evidenceforge.parallel.taskgen import TaskGenerator, generate_hypershell_command

    try:
        gen = TaskGenerator(alignments)
        task_file = gen.generate(
            command_template=template,
            output_path=output,
            output_dir=shard_dir,
            include_logging=include_logging,
        )
        merge_script = output.with_suffix(".merge.sh")
        merge_script.write_text("\n".join(gen.merge_commands(shard_dir, merge_dir, stranded)) + "\n")
    except (KeyError, OSError) as e:
        _fail(e, ctx.obj.get("verbose", False))

    if not ctx.obj.get("quiet", False):
        console.print(f"[green]Wrote {task_file.n_tasks} tasks:[/green] {output}")
        console.print(f"[green]Wrote merge commands:[/green] {merge_script}")
        console.print(f"[blue]Run:[/blue] {generate_hypershell_command(output)}")


if __name__ == "__main__":
    main()
