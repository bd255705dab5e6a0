from __future__ import annotations
from typing import Any, Dict, Generator, List, Optional

from sqlalchemy import Column, DateTime, Integer, String, Text, create_engine, func
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config.settings import settings

settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
DATABASE_URL = settings.DATABASE_URL

engine = create_engine(
    DATABASE_URL,
    echo=settings.SQLALCHEMY_ECHO,
    connect_args={"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {},
)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
Base = declarative_base()


class AnalysisRun(Base):
    __tablename__ = "analysis_runs"
    id = Column(Integer, primary_key=True, index=True)
    job_id = Column(String(64), index=True, nullable=False)
    status = Column(String(16), nullable=False)
    dataset_name = Column(String(255), nullable=False)
    dataset_size = Column(Integer, nullable=False)
    patterns_name = Column(String(255), nullable=False)
    patterns_size = Column(Integer, nullable=False)
    pattern_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    location_count = Column(Integer, nullable=False, default=0)
    target = Column(String(255), nullable=True)
    error = Column(Text, nullable=True)
    computed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status,
            "fileMetadata": {
                "datasetFile": {"name": self.dataset_name, "size": self.dataset_size},
                "patternFile": {"name": self.patterns_name, "size": self.patterns_size},
            },
            "pattern_count": self.pattern_count,
            "error_count": self.error_count,
            "location_count": self.location_count,
            "target": self.target,
            "error": self.error,
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
        }


def init_db() -> None:
    Base.metadata.create_all(bind=engine)


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def save_run(db: Session, **fields: Any) -> AnalysisRun:
    run = AnalysisRun(**fields)
    db.add(run)
    db.commit()
    db.refresh(run)
    return run


def list_runs(db: Session, limit: int = 50) -> List[AnalysisRun]:
    return db.query(AnalysisRun).order_by(AnalysisRun.id.desc()).limit(limit).all()


def latest_run(db: Session, status: Optional[str] = "finished") -> Optional[AnalysisRun]:
    query = db.query(AnalysisRun)
    if status:
        query = query.filter(AnalysisRun.status == status)
    return query.order_by(AnalysisRun.id.desc()).first()
