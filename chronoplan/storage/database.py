from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from chronoplan.config.settings import get_settings

settings = get_settings()

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, pool_pre_ping=True, echo=False, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


class TimeBlockModel(Base):
    __tablename__ = "time_blocks"

    id = Column(String, primary_key=True)
    user_id = Column(String, nullable=False, index=True)
    domain_id = Column(String, nullable=False)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="planned")
    type = Column(String, nullable=False, default="work")
    goal_ids = Column(JSON, nullable=False, default=list)  # List[str]
    task_id = Column(String, nullable=True)
    task_ids = Column(JSON, nullable=False, default=list)  # List[str]
    project_id = Column(String, nullable=True)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ScheduleChangeModel(Base):
    __tablename__ = "schedule_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)
    change_type = Column(String, nullable=False)
    strategy = Column(String, nullable=True)
    original_block_id = Column(String, nullable=False)
    new_block_id = Column(String, nullable=True)
    reasoning = Column(Text, nullable=False)
    original_block = Column(JSON, nullable=False)
    new_block = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
