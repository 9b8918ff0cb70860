from abc import ABC, abstractmethod
from typing import Sequence

from chronoplan.models.entities import BlockType, EnergyLevel, Task

HIGH_ENERGY_KEYWORDS = (
    "analyze", "design", "create", "develop", "research", "strategy",
    "plan", "architecture", "complex", "deep", "focus", "creative",
)

LOW_ENERGY_KEYWORDS = (
    "email", "call", "meeting", "admin", "file", "organize",
    "update", "quick", "simple", "routine", "check",
)

DEEP_WORK_KEYWORDS = ("analyze", "design", "create", "develop", "research", "strategy", "plan")

# First match wins.
BLOCK_TYPE_KEYWORDS = (
    (("meeting", "call"), BlockType.MEETING),
    (("break", "rest"), BlockType.BREAK),
    (("admin", "paperwork"), BlockType.ADMIN),
    (("focus", "deep"), BlockType.FOCUS),
    (("travel",), BlockType.TRAVEL),
)


def task_text(task: Task) -> str:
    return f"{task.title} {task.description or ''}".lower()


def count_keywords(text: str, keywords: Sequence[str]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


class TaskClassifier(ABC):
    """
    Classifies tasks for the optimizer. Subclass to replace the keyword
    heuristics with a better model without touching the passes.
    """

    @abstractmethod
    def energy_requirement(self, task: Task) -> EnergyLevel:
        pass

    @abstractmethod
    def is_deep_work(self, task: Task) -> bool:
        pass

    @abstractmethod
    def block_type(self, task: Task) -> BlockType:
        pass


class KeywordTaskClassifier(TaskClassifier):
    """Substring matching over the lower-cased title and description."""

    def energy_requirement(self, task: Task) -> EnergyLevel:
        text = task_text(task)
        high = count_keywords(text, HIGH_ENERGY_KEYWORDS)
        low = count_keywords(text, LOW_ENERGY_KEYWORDS)
        if high > low and high >= 1:
            return EnergyLevel.HIGH
        if low > high and low >= 1:
            return EnergyLevel.LOW
        return EnergyLevel.MEDIUM

    def is_deep_work(self, task: Task) -> bool:
        return count_keywords(task_text(task), DEEP_WORK_KEYWORDS) > 0

    def block_type(self, task: Task) -> BlockType:
        text = task_text(task)
        for keywords, block_type in BLOCK_TYPE_KEYWORDS:
            if count_keywords(text, keywords):
                return block_type
        return BlockType.WORK
