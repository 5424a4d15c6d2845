"""
SQL database — the reference TrendRepository.

Tables:
  - trend_records: One row per (source, lower(keyword), capture day); predictions
    are merged back onto the row (last-write-wins)
  - algorithm_experiments: Paired strategy experiments (RUNNING → COMPLETED)

Datetimes are stored as naive UTC; every read converts back to aware UTC.
"""

import json
import logging
import threading
from contextlib import contextmanager, nullcontext
from datetime import datetime
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import (
    create_engine, Column, String, Integer, Float, Text, DateTime, Boolean, update,
)
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import get_settings
from .errors import InvalidExperimentTransition, NotFound, RepositoryError
from .repository import TrendRepository
from .schemas.base import ExperimentStatus, Geography, LifecycleStage, Strategy, ensure_utc
from .schemas.experiments import AlgorithmExperiment, ExperimentArm, ExperimentOutcome
from .schemas.trends import StoredOpportunity, TrendRecord

logger = logging.getLogger(__name__)

Base = declarative_base()


def _naive(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    return ensure_utc(value).replace(tzinfo=None)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ── Models ───────────────────────────────────────────────────────────────────

class TrendRecordModel(Base):
    """One observation of a keyword from one source on one day."""
    __tablename__ = "trend_records"

    id = Column(String(50), primary_key=True)
    dedup_key = Column(String(600), nullable=False, unique=True)
    source = Column(String(50), nullable=False, index=True)
    keyword = Column(String(500), nullable=False)
    keyword_lower = Column(String(500), nullable=False, index=True)
    volume = Column(Integer, default=0)
    growth_percent = Column(Float, default=0.0)
    competition = Column(Float, default=0.0)
    geography = Column(Text)  # JSON object
    lifecycle = Column(String(20), nullable=False, index=True)
    viral_coefficient = Column(Float, nullable=True)
    sentiment = Column(Float, default=0.0)
    relevance_score = Column(Integer, nullable=False)
    pillars = Column(Text, default="[]")  # JSON array
    related_keywords = Column(Text, default="[]")  # JSON array
    top_content = Column(Text, default="[]")  # JSON array
    captured_at = Column(DateTime, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)

    # Last-write-wins prediction fields
    peak_prediction = Column(DateTime, nullable=True)
    opportunity_window = Column(Text, nullable=True)  # JSON object


class AlgorithmExperimentModel(Base):
    """Paired heuristic vs model prediction for one trend."""
    __tablename__ = "algorithm_experiments"

    id = Column(String(50), primary_key=True)
    trend_id = Column(String(50), nullable=False, index=True)
    subject_keyword = Column(String(500), nullable=False)
    strategy_a = Column(Text, nullable=False)  # JSON ExperimentArm (control)
    strategy_b = Column(Text, nullable=False)  # JSON ExperimentArm (variant)
    velocity = Column(Float, default=0.0)
    acceleration = Column(Float, default=0.0)
    days_difference = Column(Integer, default=0)
    confidence_difference = Column(Integer, default=0)
    control_performance = Column(Float, default=0.0)
    variant_performance = Column(Float, default=0.0)
    status = Column(String(20), nullable=False, default=ExperimentStatus.RUNNING.value, index=True)
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime, nullable=True, index=True)
    actual_peak_at = Column(DateTime, nullable=True)
    actual_days_until_peak = Column(Integer, nullable=True)
    improvement = Column(Float, nullable=True)
    is_significant = Column(Boolean, nullable=True)
    winner = Column(String(20), nullable=True)
    learning = Column(Text)
    recommendation = Column(Text)


# ── Row <-> schema ───────────────────────────────────────────────────────────

def _apply_record(row: TrendRecordModel, record: TrendRecord) -> None:
    row.dedup_key = "|".join(record.dedup_key)
    row.source = record.source
    row.keyword = record.keyword
    row.keyword_lower = record.keyword.lower()
    row.volume = record.volume
    row.growth_percent = record.growth_percent
    row.competition = record.competition
    row.geography = record.geography.model_dump_json()
    row.lifecycle = record.lifecycle.value
    row.viral_coefficient = record.viral_coefficient
    row.sentiment = record.sentiment
    row.relevance_score = record.relevance_score
    row.pillars = json.dumps(sorted(record.pillars))
    row.related_keywords = json.dumps(record.related_keywords)
    row.top_content = json.dumps(record.top_content, default=str)
    row.captured_at = _naive(record.captured_at)
    row.expires_at = _naive(record.expires_at)
    row.peak_prediction = _naive(record.peak_prediction)
    row.opportunity_window = (
        record.opportunity_window.model_dump_json() if record.opportunity_window else None
    )


def _to_record(row: TrendRecordModel) -> TrendRecord:
    return TrendRecord(
        id=row.id,
        source=row.source,
        keyword=row.keyword,
        volume=row.volume,
        growth_percent=row.growth_percent,
        competition=row.competition,
        geography=Geography.model_validate_json(row.geography) if row.geography else Geography(),
        lifecycle=LifecycleStage(row.lifecycle),
        viral_coefficient=row.viral_coefficient,
        sentiment=row.sentiment,
        relevance_score=row.relevance_score,
        pillars=set(json.loads(row.pillars or "[]")),
        related_keywords=json.loads(row.related_keywords or "[]"),
        top_content=json.loads(row.top_content or "[]"),
        captured_at=_aware(row.captured_at),
        expires_at=_aware(row.expires_at),
        peak_prediction=_aware(row.peak_prediction),
        opportunity_window=(
            StoredOpportunity.model_validate_json(row.opportunity_window)
            if row.opportunity_window else None
        ),
    )


def _to_experiment(row: AlgorithmExperimentModel) -> AlgorithmExperiment:
    return AlgorithmExperiment(
        id=row.id,
        trend_id=row.trend_id,
        subject_keyword=row.subject_keyword,
        strategy_a=ExperimentArm.model_validate_json(row.strategy_a),
        strategy_b=ExperimentArm.model_validate_json(row.strategy_b),
        velocity=row.velocity or 0.0,
        acceleration=row.acceleration or 0.0,
        days_difference=row.days_difference or 0,
        confidence_difference=row.confidence_difference or 0,
        control_performance=row.control_performance or 0.0,
        variant_performance=row.variant_performance or 0.0,
        status=ExperimentStatus(row.status),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        actual_peak_at=_aware(row.actual_peak_at),
        actual_days_until_peak=row.actual_days_until_peak,
        improvement=row.improvement,
        is_significant=row.is_significant,
        winner=Strategy(row.winner) if row.winner else None,
        learning=row.learning or "",
        recommendation=row.recommendation or "",
    )


# ── Database class ───────────────────────────────────────────────────────────

class Database(TrendRepository):
    """SQLAlchemy-backed TrendRepository."""

    def __init__(self, database_url: Optional[str] = None, min_relevance: Optional[int] = None):
        settings = get_settings()
        url = database_url or settings.database_url
        self.min_relevance = min_relevance if min_relevance is not None else settings.min_relevance_score

        if url in ("sqlite://", "sqlite:///:memory:"):
            # One shared in-memory database across worker threads
            self.engine = create_engine(
                url, echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        elif url.startswith("sqlite"):
            self.engine = create_engine(url, echo=False, connect_args={"check_same_thread": False})
        else:
            self.engine = create_engine(url, echo=False)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        # SQLite has a single writer; serialize sessions coming from worker threads
        self._lock = threading.RLock() if url.startswith("sqlite") else nullcontext()

    def create_tables(self):
        """Create all tables (safe to call multiple times)."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        with self._lock:
            session = self.SessionLocal()
            try:
                yield session
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise RepositoryError(f"database error: {e}") from e
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()

    # ── Trend records ─────────────────────────────────────────────────

    def _below_floor(self, record: TrendRecord) -> bool:
        if record.relevance_score < self.min_relevance:
            logger.info(
                f"Rejected '{record.keyword}' ({record.source}): relevance "
                f"{record.relevance_score} < {self.min_relevance}"
            )
            return True
        return False

    def upsert(self, record: TrendRecord) -> bool:
        if self._below_floor(record):
            return False
        dedup_key = "|".join(record.dedup_key)
        with self.get_session() as session:
            row = session.query(TrendRecordModel).filter_by(dedup_key=dedup_key).first()
            if row is None:
                row = session.get(TrendRecordModel, record.id)
            if row is None:
                row = TrendRecordModel(id=record.id)
                session.add(row)
            _apply_record(row, record)
        return True

    def create_if_absent(self, record: TrendRecord) -> bool:
        if self._below_floor(record):
            return False
        dedup_key = "|".join(record.dedup_key)
        try:
            with self.get_session() as session:
                if session.query(TrendRecordModel.id).filter_by(dedup_key=dedup_key).first():
                    return False
                row = TrendRecordModel(id=record.id)
                _apply_record(row, record)
                session.add(row)
        except RepositoryError as e:
            # Lost a race against a concurrent insert of the same key
            if isinstance(e.__cause__, IntegrityError):
                return False
            raise
        return True

    def get_trend(self, trend_id: str) -> Optional[TrendRecord]:
        with self.get_session() as session:
            row = session.get(TrendRecordModel, trend_id)
            return _to_record(row) if row else None

    def find_active(
        self,
        min_relevance: int,
        lifecycle_in: Optional[Sequence[LifecycleStage]],
        limit: int,
        now: datetime,
        pillar: Optional[str] = None,
    ) -> List[TrendRecord]:
        with self.get_session() as session:
            query = session.query(TrendRecordModel).filter(
                TrendRecordModel.relevance_score >= min_relevance,
                TrendRecordModel.expires_at >= _naive(now),
            )
            if lifecycle_in:
                query = query.filter(TrendRecordModel.lifecycle.in_([s.value for s in lifecycle_in]))
            if pillar:
                query = query.filter(TrendRecordModel.pillars.like(f'%"{pillar}"%'))
            rows = query.order_by(
                TrendRecordModel.viral_coefficient.is_(None),
                TrendRecordModel.viral_coefficient.desc(),
                TrendRecordModel.relevance_score.desc(),
            ).limit(limit).all()
            return [_to_record(r) for r in rows]

    def find_recent(
        self,
        lifecycle_in: Sequence[LifecycleStage],
        limit: int,
        now: datetime,
    ) -> List[TrendRecord]:
        with self.get_session() as session:
            rows = session.query(TrendRecordModel).filter(
                TrendRecordModel.lifecycle.in_([s.value for s in lifecycle_in]),
                TrendRecordModel.expires_at >= _naive(now),
            ).order_by(TrendRecordModel.captured_at.desc()).limit(limit).all()
            return [_to_record(r) for r in rows]

    def find_history(self, keyword: str, since: datetime) -> List[TrendRecord]:
        with self.get_session() as session:
            rows = session.query(TrendRecordModel).filter(
                TrendRecordModel.keyword_lower == keyword.lower(),
                TrendRecordModel.captured_at >= _naive(since),
            ).order_by(TrendRecordModel.captured_at.asc()).all()
            return [_to_record(r) for r in rows]

    # ── Experiments ───────────────────────────────────────────────────

    def record_experiment(self, experiment: AlgorithmExperiment) -> None:
        with self.get_session() as session:
            session.merge(AlgorithmExperimentModel(  # merge = upsert
                id=experiment.id,
                trend_id=experiment.trend_id,
                subject_keyword=experiment.subject_keyword,
                strategy_a=experiment.strategy_a.model_dump_json(),
                strategy_b=experiment.strategy_b.model_dump_json(),
                velocity=experiment.velocity,
                acceleration=experiment.acceleration,
                days_difference=experiment.days_difference,
                confidence_difference=experiment.confidence_difference,
                control_performance=experiment.control_performance,
                variant_performance=experiment.variant_performance,
                status=experiment.status.value,
                started_at=_naive(experiment.started_at),
                completed_at=_naive(experiment.completed_at),
                actual_peak_at=_naive(experiment.actual_peak_at),
                actual_days_until_peak=experiment.actual_days_until_peak,
                improvement=experiment.improvement,
                is_significant=experiment.is_significant,
                winner=experiment.winner.value if experiment.winner else None,
                learning=experiment.learning,
                recommendation=experiment.recommendation,
            ))

    def get_experiment(self, experiment_id: str) -> Optional[AlgorithmExperiment]:
        with self.get_session() as session:
            row = session.get(AlgorithmExperimentModel, experiment_id)
            return _to_experiment(row) if row else None

    def complete_experiment(
        self,
        experiment_id: str,
        actual_peak_at: datetime,
        outcome: ExperimentOutcome,
        completed_at: datetime,
    ) -> AlgorithmExperiment:
        with self.get_session() as session:
            # Conditional update: only a RUNNING row can move to COMPLETED
            result = session.execute(
                update(AlgorithmExperimentModel)
                .where(
                    AlgorithmExperimentModel.id == experiment_id,
                    AlgorithmExperimentModel.status == ExperimentStatus.RUNNING.value,
                )
                .values(
                    status=ExperimentStatus.COMPLETED.value,
                    completed_at=_naive(completed_at),
                    actual_peak_at=_naive(actual_peak_at),
                    actual_days_until_peak=outcome.actual_days_until_peak,
                    control_performance=outcome.control_accuracy,
                    variant_performance=outcome.variant_accuracy,
                    improvement=outcome.improvement,
                    is_significant=outcome.is_significant,
                    winner=outcome.winner.value,
                    learning=outcome.learning,
                    recommendation=outcome.recommendation,
                )
            )
            if result.rowcount == 0:
                row = session.get(AlgorithmExperimentModel, experiment_id)
                if row is None:
                    raise NotFound("Experiment", experiment_id)
                raise InvalidExperimentTransition(
                    f"experiment {experiment_id} is {row.status}; only RUNNING can complete"
                )
            session.flush()
            session.expire_all()
            return _to_experiment(session.get(AlgorithmExperimentModel, experiment_id))

    def find_completed_experiments(self, limit: int) -> List[AlgorithmExperiment]:
        with self.get_session() as session:
            rows = session.query(AlgorithmExperimentModel).filter(
                AlgorithmExperimentModel.status == ExperimentStatus.COMPLETED.value,
            ).order_by(AlgorithmExperimentModel.completed_at.desc()).limit(limit).all()
            return [_to_experiment(r) for r in rows]


# ── Singleton ────────────────────────────────────────────────────────────────

_database: Optional[Database] = None


def get_database() -> Database:
    """Get the shared database (tables created on first use)."""
    global _database
    if _database is None:
        _database = Database()
        _database.create_tables()
    return _database
