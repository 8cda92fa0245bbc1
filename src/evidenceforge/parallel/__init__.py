"""Parallelization utilities for EvidenceForge.

This module provides tools for parallel execution of EvidenceForge
operations:

- Local thread/process execution (per-reference compression, per-BAM
  extraction)
- Task file generation for HyperShell/GNU Parallel

For HPC clusters, the recommended approach is:
1. Generate a task file with TaskGenerator (one extraction per BAM)
2. Execute with HyperShell or GNU Parallel
3. Run the merge commands on the shard outputs

Example:
    >>> from evidenceforge.parallel import TaskGenerator
    >>> gen = TaskGenerator(["a.bam", "b.bam"])
    >>> task_file = gen.generate(output_path="tasks.txt", output_dir="shards")
    >>> # Execute with: hs cluster tasks.txt --num-tasks 32
"""

from evidenceforge.parallel.executor import (
    ExecutionStats,
    ExecutorBackend,
    ParallelExecutor,
    TaskFailedError,
    TaskResult,
    get_optimal_workers,
)
from evidenceforge.parallel.taskgen import (
    Shard,
    TaskFile,
    TaskGenerator,
    format_command,
    generate_hypershell_command,
)

__all__ = [
    # Execution
    "ExecutionStats",
    "ExecutorBackend",
    "ParallelExecutor",
    "TaskFailedError",
    "TaskResult",
    "get_optimal_workers",
    # Task Generation (HyperShell/GNU Parallel)
    "Shard",
    "TaskFile",
    "TaskGenerator",
    "format_command",
    "generate_hypershell_command",
]
