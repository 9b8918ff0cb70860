from collections import OrderedDict
from functools import lru_cache
import logging
import threading
from typing import List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from chronoplan.api.dto import (
    BenchmarkEntry,
    BenchmarkRequest,
    BenchmarkResponse,
    ConstraintsDTO,
    EnergyRequest,
    GenerateRequest,
    OptimizeRequest,
    RecoveryRequest,
    ReplanRequest,
    SlotResponse,
    SlotsRequest,
    TimeBlockDTO,
)
from chronoplan.config.settings import get_settings
from chronoplan.engine.replanning import RePlanningEngine
from chronoplan.engine.scheduler import AutoScheduler
from chronoplan.models.results import ChangeType, RePlanningResult
from chronoplan.storage.cache import ScheduleCache, get_cache
from chronoplan.storage.database import get_db
from chronoplan.storage.repositories import ScheduleChangeRepository, TimeBlockRepository
from chronoplan.utils.benchmarking import benchmark_passes, best_pass

schedule_router = APIRouter(prefix="/schedule", tags=["scheduling"])
replan_router = APIRouter(prefix="/replan", tags=["re-planning"])
logger = logging.getLogger(__name__)


class ReplannerRegistry:
    """
    One RePlanningEngine and one lock per user. The engine carries per-user
    state (history, emergency flag), so calls for a user must not interleave.

    At most `max_users` engines are kept; the least recently used idle one
    is dropped first. An engine whose lock is held is never dropped.
    """

    def __init__(self, scheduler: AutoScheduler, max_users: Optional[int] = None):
        self.scheduler = scheduler
        self.max_users = max_users or scheduler.settings.replanner_max_users
        self._entries: "OrderedDict[str, Tuple[RePlanningEngine, threading.Lock]]" = OrderedDict()
        self._guard = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def acquire(self, user_id: str) -> Tuple[RePlanningEngine, threading.Lock]:
        with self._guard:
            entry = self._entries.get(user_id)
            if entry is None:
                engine = RePlanningEngine(
                    scheduler=self.scheduler,
                    settings=self.scheduler.settings,
                    clock=self.scheduler.clock,
                )
                entry = self._entries[user_id] = (engine, threading.Lock())
                self._evict(keep=user_id)
            self._entries.move_to_end(user_id)
            return entry

    def _evict(self, keep: str) -> None:
        for user_id in list(self._entries):
            if len(self._entries) <= self.max_users:
                return
            if user_id != keep and not self._entries[user_id][1].locked():
                del self._entries[user_id]
                logger.debug(f"Dropped idle re-planner for user {user_id}")


@lru_cache(maxsize=1)
def get_scheduler() -> AutoScheduler:
    return AutoScheduler(get_settings())


@lru_cache(maxsize=1)
def get_replanners() -> ReplannerRegistry:
    return ReplannerRegistry(get_scheduler())


def ensure_valid_blocks(blocks: List[TimeBlockDTO]) -> None:
    for block in blocks:
        if block.end_time <= block.start_time:
            logger.warning(f"Rejected block {block.id}: end_time is not after start_time")
            raise HTTPException(status_code=400, detail=f"Block {block.id} must end after it starts")


def apply_replan(db: Session, user_id: str, result: RePlanningResult) -> None:
    """Persist the new schedule and its change log."""
    blocks = TimeBlockRepository(db)
    blocks.save_all(result.new_schedule)
    for change in result.changes:
        if change.type == ChangeType.CANCELLED:
            blocks.delete(change.original_block.id)
        elif change.type == ChangeType.POSTPONED and change.new_block is not None:
            blocks.save(change.new_block)
    ScheduleChangeRepository(db).record(user_id, result.changes, result.strategy)


def replan_response(result: RePlanningResult, engine: RePlanningEngine) -> dict:
    body = jsonable_encoder(result)
    body["emergency_mode"] = engine.emergency_mode.active
    return body


@schedule_router.post("/generate", summary="Generate a schedule for unscheduled tasks")
def generate(
    req: GenerateRequest,
    db: Session = Depends(get_db),
    scheduler: AutoScheduler = Depends(get_scheduler),
    cache: ScheduleCache = Depends(get_cache),
):
    """
    Schedule tasks into free time.

    **Algorithm**:
    1. Validate input (DTOs with pydantic validators)
    2. Check cache for an identical request in the current minute
    3. Run the four optimization passes and keep the best
    4. Attach Conservative / Aggressive / Energy-Optimized alternatives
    5. Store the chosen blocks and cache the result

    **Returns:** a SchedulingResult (schedule, conflicts, alternatives, reasoning, confidence)
    plus `cached`.
    """
    logger.info(f"Generate request: user={req.user_id} tasks={len(req.tasks)}")
    ensure_valid_blocks(req.constraints.existing_blocks)
    settings = scheduler.settings

    key = ScheduleCache.hash_payload({
        "request": req.model_dump(mode="json"),
        "minute": scheduler.clock().strftime("%Y-%m-%dT%H:%M"),
    })
    if settings.cache_enabled:
        cached_result = cache.get(key)
        if cached_result:
            logger.info("Cache hit")
            return {**cached_result, "cached": True}

    tasks = [t.to_domain(req.user_id) for t in req.tasks]
    result = scheduler.schedule(tasks, req.constraints.to_domain(req.user_id))
    TimeBlockRepository(db).save_all(result.schedule)
    logger.info(f"Schedule generated: {len(result.schedule)} blocks, confidence={result.confidence:.2f}")

    body = jsonable_encoder(result)
    if settings.cache_enabled:
        cache.set(key, body)
    return {**body, "cached": False}


@schedule_router.post("/optimize", summary="Analyse and optionally relocate an existing schedule")
def optimize(req: OptimizeRequest, scheduler: AutoScheduler = Depends(get_scheduler)):
    ensure_valid_blocks(req.blocks)
    blocks = [b.to_domain(req.user_id) for b in req.blocks]
    result = scheduler.optimize_existing(blocks, req.constraints.to_domain(req.user_id))
    logger.info(f"Optimize existing: {len(blocks)} blocks, {len(result.conflicts)} conflicts")
    return jsonable_encoder(result)


@schedule_router.post("/slots", response_model=List[SlotResponse], summary="Find available slots")
def slots(req: SlotsRequest, scheduler: AutoScheduler = Depends(get_scheduler)):
    """Free slots of the requested length over the search window, most desirable first."""
    ensure_valid_blocks(req.constraints.existing_blocks)
    found = scheduler.find_available_slots(req.duration_minutes, req.constraints.to_domain())
    return [SlotResponse.from_domain(s) for s in found]


@schedule_router.post("/benchmark", response_model=BenchmarkResponse, summary="Benchmark optimization passes")
def benchmark(req: BenchmarkRequest, scheduler: AutoScheduler = Depends(get_scheduler)):
    """
    Run each optimization pass independently on the same instance.

    **Returns:**
    - Timing, quality, block and conflict counts for each pass
    - The pass schedule() would have picked
    """
    logger.info(f"Benchmark request: {len(req.tasks)} tasks")
    tasks = [t.to_domain() for t in req.tasks]
    results = benchmark_passes(tasks, req.constraints.to_domain(), scheduler)

    return {
        "results": [
            BenchmarkEntry(
                pass_name=r.pass_name,
                time_seconds=r.time_seconds,
                quality=r.quality,
                success=r.success,
                num_blocks=r.num_blocks,
                num_conflicts=r.num_conflicts,
            )
            for r in results
        ],
        "num_tasks": len(tasks),
        "best_pass": best_pass(results),
    }


def constraints_for(dto: Optional[ConstraintsDTO], user_id: str):
    if dto is None:
        return None
    ensure_valid_blocks(dto.existing_blocks)
    return dto.to_domain(user_id)


@replan_router.post("/trigger", summary="Re-plan after a disruption")
def replan_trigger(
    req: ReplanRequest,
    db: Session = Depends(get_db),
    registry: ReplannerRegistry = Depends(get_replanners),
):
    """
    Repair the current schedule after a disruption (overrun, interrupt,
    missed block, energy change, session end).

    Calls for the same user are serialized. Postponed blocks carry a proposed
    next-day position when `constraints` are supplied.
    """
    ctx = req.trigger.context
    ensure_valid_blocks(ctx.current_schedule + ctx.missed_blocks)
    constraints = constraints_for(req.constraints, req.user_id)
    trigger = req.trigger.to_domain(req.user_id)

    engine, lock = registry.acquire(req.user_id)
    with lock:
        engine.constraints = constraints
        result = engine.handle_trigger(trigger, req.options.to_domain())
        apply_replan(db, req.user_id, result)
        return replan_response(result, engine)


@replan_router.post("/recovery", summary="Recover from missed blocks")
def replan_recovery(
    req: RecoveryRequest,
    db: Session = Depends(get_db),
    registry: ReplannerRegistry = Depends(get_replanners),
):
    ensure_valid_blocks(req.missed_blocks + req.remaining_day)
    constraints = constraints_for(req.constraints, req.user_id)
    missed = [b.to_domain(req.user_id) for b in req.missed_blocks]
    remaining = [b.to_domain(req.user_id) for b in req.remaining_day]

    engine, lock = registry.acquire(req.user_id)
    with lock:
        engine.constraints = constraints
        result = engine.suggest_recovery(missed, remaining)
        apply_replan(db, req.user_id, result)
        return replan_response(result, engine)


@replan_router.post("/energy", summary="Adapt the schedule to the current energy level")
def replan_energy(
    req: EnergyRequest,
    db: Session = Depends(get_db),
    registry: ReplannerRegistry = Depends(get_replanners),
):
    ensure_valid_blocks(req.schedule)
    schedule = [b.to_domain(req.user_id) for b in req.schedule]

    engine, lock = registry.acquire(req.user_id)
    with lock:
        result = engine.adapt_to_energy_change(req.current_energy, schedule)
        apply_replan(db, req.user_id, result)
        return replan_response(result, engine)
