"""Cluster task files: one extraction per alignment file, then a merge.

Extraction never looks across alignment files, so a large RNA-seq
collection runs as independent ``evidenceforge extract`` tasks, one
line each, fed to HyperShell (https://hypershell.readthedocs.io/), GNU
Parallel or xargs. When all tasks have finished, the commands from
``TaskGenerator.merge_commands`` fold the shard directories into the
final intron and coverage files.

Example:
    >>> gen = TaskGenerator(["liver.bam", "brain.bam"])
    >>> gen.generate(output_path="tasks.txt", output_dir="shards")
    >>> print(generate_hypershell_command("tasks.txt", parallelism=32))
    hs cluster tasks.txt --num-tasks 32
"""

from __future__ import annotations

import logging
import shlex
import string
from pathlib import Path
from typing import Iterable, NamedTuple

import attrs

from evidenceforge.core.extract import (
    COVERAGE_FILE,
    FORWARD_COVERAGE_FILE,
    INTRON_FILE,
    REVERSE_COVERAGE_FILE,
)

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "evidenceforge extract {bam} -o {output_dir}/{shard_id}"


class Shard(NamedTuple):
    """An alignment file and the directory name its evidence goes to."""

    shard_id: str
    path: Path


@attrs.define(slots=True)
class TaskFile:
    """A written task file.

    Attributes:
        path: Location of the file.
        n_tasks: Number of command lines.
        command_template: Template the lines were rendered from.
    """

    path: Path
    n_tasks: int
    command_template: str

    def read_all(self) -> list[str]:
        """All command lines; empty if the file is gone."""
        try:
            return self.path.read_text().splitlines()
        except FileNotFoundError:
            return []

    def preview(self, n: int = 5) -> list[str]:
        """The first ``n`` command lines."""
        return self.read_all()[:n]


def format_command(
    template: str,
    shard: Shard,
    output_dir: Path | None = None,
    extra_vars: dict[str, str] | None = None,
) -> str:
    """Render one command line for a shard.

    Placeholders: ``{shard_id}``, ``{bam}`` (shell-quoted path), ``{name}``
    (file stem), ``{output_dir}`` when ``output_dir`` is given, and the
    keys of ``extra_vars``.

    Raises:
        KeyError: The template names a placeholder with no value.
    """
    values = {"shard_id": shard.shard_id, "bam": shlex.quote(str(shard.path)), "name": shard.path.stem}
    if output_dir is not None:
        values["output_dir"] = str(output_dir)
    values.update(extra_vars or {})

    fields = {field for _, field, _, _ in string.Formatter().parse(template) if field}
    missing = sorted(fields - values.keys())
    if missing:
        raise KeyError(f"No value for placeholder(s) {', '.join(missing)} in {template!r}")
    return template.format_map(values)


class TaskGenerator:
    """Turns a list of alignment files into extraction and merge commands.

    Shards are numbered ``shard_0000``, ``shard_0001``... in input order,
    and that order is kept in every generated command.
    """

    def __init__(self, alignment_files: Iterable[Path | str]) -> None:
        self.shards = [Shard(f"shard_{i:04d}", Path(p)) for i, p in enumerate(alignment_files)]

    def __len__(self) -> int:
        return len(self.shards)

    def generate(
        self,
        command_template: str = DEFAULT_TEMPLATE,
        output_path: Path | str = "tasks.txt",
        output_dir: Path | str | None = None,
        include_logging: bool = False,
        log_dir: Path | str | None = None,
        extra_vars: dict[str, str] | None = None,
    ) -> TaskFile:
        """Write one extraction command per shard.

        Args:
            command_template: See ``format_command``.
            output_path: Task file to write.
            output_dir: Parent directory of the shard outputs; created.
            include_logging: Redirect each task's output to
                ``<log_dir>/<shard_id>.log``.
            log_dir: Log directory, ``<output_dir>/logs`` by default.
            extra_vars: Additional placeholder values.

        Returns:
            The written TaskFile.
        """
        output_path = Path(output_path)
        shard_root = Path(output_dir) if output_dir else None
        if log_dir is None and shard_root is not None:
            log_dir = shard_root / "logs"
        redirect = include_logging and log_dir is not None

        lines = [format_command(command_template, s, shard_root, extra_vars) for s in self.shards]
        if redirect:
            lines = [
                f"{line} > {Path(log_dir) / shard.shard_id}.log 2>&1"
                for line, shard in zip(lines, self.shards)
            ]

        output_path.parent.mkdir(parents=True, exist_ok=True)
        if shard_root is not None:
            shard_root.mkdir(parents=True, exist_ok=True)
        if redirect:
            Path(log_dir).mkdir(parents=True, exist_ok=True)
        output_path.write_text("".join(line + "\n" for line in lines))

        logger.info(f"Wrote {len(lines)} extraction tasks to {output_path}")
        return TaskFile(path=output_path, n_tasks=len(lines), command_template=command_template)

    def merge_commands(
        self,
        shard_dir: Path | str,
        output_dir: Path | str,
        stranded: bool = False,
    ) -> list[str]:
        """Commands that combine the finished shards.

        Args:
            shard_dir: Directory holding one subdirectory per shard.
            output_dir: Directory for the merged files.
            stranded: Shards carry separate forward and reverse coverage.

        Returns:
            ``merge-introns`` first, then one ``merge-coverage`` per track.
        """
        shard_dir = Path(shard_dir)
        output_dir = Path(output_dir)
        tracks = [FORWARD_COVERAGE_FILE, REVERSE_COVERAGE_FILE] if stranded else [COVERAGE_FILE]

        commands = []
        for subcommand, filename in [("merge-introns", INTRON_FILE)] + [
            ("merge-coverage", track) for track in tracks
        ]:
            inputs = [str(shard_dir / s.shard_id / filename) for s in self.shards]
            commands.append(shlex.join(["evidenceforge", subcommand, str(output_dir / filename), *inputs]))
        return commands


def generate_hypershell_command(
    task_file: Path | str,
    parallelism: int | None = None,
    timeout: int | None = None,
) -> str:
    """HyperShell invocation that runs a task file on a cluster."""
    parts = ["hs", "cluster", str(task_file)]
    if parallelism:
        parts += ["--num-tasks", str(parallelism)]
    if timeout:
        parts += ["--task-timeout", str(timeout)]
    return " ".join(parts)
