import time
from dataclasses import dataclass
from typing import List, Optional

from chronoplan.engine.passes import OPTIMIZATION_PASSES
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.models.constraints import SchedulingConstraints
from chronoplan.models.entities import Task


@dataclass
class BenchmarkResult:
    pass_name: str
    time_seconds: float
    quality: float
    success: bool
    num_tasks: int
    num_blocks: int = 0
    num_conflicts: int = 0


def benchmark_passes(
    tasks: List[Task],
    constraints: SchedulingConstraints,
    scheduler: Optional[AutoScheduler] = None,
) -> List[BenchmarkResult]:
    """
    Time every optimization pass on the same instance.
    A pass that raises is reported with success=False and quality 0.
    """
    scheduler = scheduler or AutoScheduler()
    results = []

    for name, _ in OPTIMIZATION_PASSES:
        start = time.perf_counter()
        try:
            result = scheduler.run_pass(name, tasks, constraints)
        except Exception:
            results.append(BenchmarkResult(
                pass_name=name,
                time_seconds=time.perf_counter() - start,
                quality=0.0,
                success=False,
                num_tasks=len(tasks),
            ))
            continue
        elapsed = time.perf_counter() - start
        results.append(BenchmarkResult(
            pass_name=name,
            time_seconds=elapsed,
            quality=scheduler.quality(result, constraints),
            success=True,
            num_tasks=len(tasks),
            num_blocks=len(result.schedule),
            num_conflicts=len(result.conflicts),
        ))

    return results


def best_pass(results: List[BenchmarkResult]) -> Optional[str]:
    """Highest quality among successful passes; earlier passes win ties."""
    best = None
    for r in results:
        if r.success and (best is None or r.quality > best.quality):
            best = r
    return best.pass_name if best else None
