from collections import defaultdict
from typing import Dict, List, Set, Tuple

from chronoplan.engine.availability import times_overlap
from chronoplan.models.entities import TimeBlock


def build_conflict_graph(blocks: List[TimeBlock]) -> Dict[str, Set[str]]:
    """Adjacency sets between blocks of the same user whose intervals overlap."""
    graph: Dict[str, Set[str]] = defaultdict(set)
    ordered = sorted(blocks, key=lambda b: b.start_time)
    for i, b1 in enumerate(ordered):
        for b2 in ordered[i + 1 :]:
            if b2.start_time >= b1.end_time:
                break
            if b1.user_id == b2.user_id and times_overlap(b1.start_time, b1.end_time, b2.start_time, b2.end_time):
                graph[b1.id].add(b2.id)
                graph[b2.id].add(b1.id)
    return graph


def overlapping_pairs(blocks: List[TimeBlock]) -> List[Tuple[TimeBlock, TimeBlock]]:
    by_id = {b.id: b for b in blocks}
    graph = build_conflict_graph(blocks)
    pairs = []
    for block_id in sorted(graph):
        for other_id in sorted(graph[block_id]):
            if block_id < other_id:
                pairs.append((by_id[block_id], by_id[other_id]))
    return pairs
