from typing import Iterable, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from chronoplan.models.entities import BlockStatus, BlockType, TimeBlock
from chronoplan.models.results import AdaptiveStrategy, ScheduleChange
from chronoplan.storage.database import ScheduleChangeModel, TimeBlockModel


class TimeBlockRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, block_id: str) -> Optional[TimeBlock]:
        model = self.db.query(TimeBlockModel).filter(TimeBlockModel.id == block_id).first()
        if not model:
            return None
        return self._model_to_block(model)

    def list_for_user(self, user_id: str) -> List[TimeBlock]:
        models = (
            self.db.query(TimeBlockModel)
            .filter(TimeBlockModel.user_id == user_id)
            .order_by(TimeBlockModel.start_time)
            .all()
        )
        return [self._model_to_block(m) for m in models]

    def save(self, block: TimeBlock) -> None:
        self._upsert(block)
        self.db.commit()

    def save_all(self, blocks: Iterable[TimeBlock]) -> None:
        for block in blocks:
            self._upsert(block)
        self.db.commit()

    def delete(self, block_id: str) -> None:
        self.db.query(TimeBlockModel).filter(TimeBlockModel.id == block_id).delete()
        self.db.commit()

    def _upsert(self, block: TimeBlock) -> None:
        existing = self.db.query(TimeBlockModel).filter(TimeBlockModel.id == block.id).first()
        fields = dict(
            user_id=block.user_id,
            domain_id=block.domain_id,
            title=block.title,
            description=block.description,
            start_time=block.start_time,
            end_time=block.end_time,
            status=block.status.value,
            type=block.type.value,
            goal_ids=list(block.goal_ids),
            task_id=block.task_id,
            task_ids=list(block.task_ids),
            project_id=block.project_id,
            actual_start_time=block.actual_start_time,
            actual_end_time=block.actual_end_time,
        )
        if existing:
            for key, value in fields.items():
                setattr(existing, key, value)
        else:
            model = TimeBlockModel(id=block.id, **fields)
            if block.created_at:
                model.created_at = block.created_at
            self.db.add(model)

    @staticmethod
    def _model_to_block(model: TimeBlockModel) -> TimeBlock:
        return TimeBlock(
            id=model.id,
            title=model.title,
            description=model.description or "",
            start_time=model.start_time,
            end_time=model.end_time,
            domain_id=model.domain_id,
            user_id=model.user_id,
            status=BlockStatus(model.status),
            type=BlockType(model.type),
            goal_ids=list(model.goal_ids or []),
            task_id=model.task_id,
            task_ids=list(model.task_ids or []),
            project_id=model.project_id,
            actual_start_time=model.actual_start_time,
            actual_end_time=model.actual_end_time,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


class ScheduleChangeRepository:
    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        user_id: str,
        changes: Iterable[ScheduleChange],
        strategy: Optional[AdaptiveStrategy] = None,
    ) -> int:
        count = 0
        for change in changes:
            self.db.add(ScheduleChangeModel(
                user_id=user_id,
                change_type=change.type.value,
                strategy=strategy.value if strategy else None,
                original_block_id=change.original_block.id,
                new_block_id=change.new_block.id if change.new_block else None,
                reasoning=change.reasoning,
                original_block=jsonable_encoder(change.original_block),
                new_block=jsonable_encoder(change.new_block) if change.new_block else None,
            ))
            count += 1
        self.db.commit()
        return count

    def list_for_user(self, user_id: str) -> List[dict]:
        models = (
            self.db.query(ScheduleChangeModel)
            .filter(ScheduleChangeModel.user_id == user_id)
            .order_by(ScheduleChangeModel.id)
            .all()
        )
        return [
            {
                "type": m.change_type,
                "strategy": m.strategy,
                "original_block_id": m.original_block_id,
                "new_block_id": m.new_block_id,
                "reasoning": m.reasoning,
                "created_at": m.created_at,
            }
            for m in models
        ]
