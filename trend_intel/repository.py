"""
TrendRepository — persistence contract consumed by the engine.

Implementations are synchronous (the SQLAlchemy store in database.py is the
reference one); the service runs every call in a worker thread under a
timeout. Implementations raise RepositoryError for storage failures and must
never retry writes on their own.

A timeout is not a cancellation. When the service gives up on a call and
raises RepositoryError, the worker thread runs on: it keeps any lock the
implementation holds (database.py serializes SQLite sessions behind one)
and may still commit the write the caller saw fail. Writes are therefore
keyed so that replaying them is harmless (upsert by dedup key, the
conditional RUNNING → COMPLETED update), and a caller that sees a timed-out
write should re-read before assuming it was lost.

Contract highlights:
  - upsert() is last-write-wins per (source, lower(keyword), capture day) and
    refuses records below the minimum relevance score (returns False).
  - create_if_absent() is the exactly-once variant keyed the same way.
  - find_history() returns records in strictly increasing captured_at order.
  - complete_experiment() is the only RUNNING → COMPLETED transition and
    raises InvalidExperimentTransition if the experiment is not RUNNING.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from trend_intel.schemas.base import LifecycleStage
from trend_intel.schemas.experiments import AlgorithmExperiment, ExperimentOutcome
from trend_intel.schemas.trends import TrendRecord


class TrendRepository(ABC):

    @abstractmethod
    def upsert(self, record: TrendRecord) -> bool:
        """Insert or overwrite. False when the record is below the relevance floor."""

    @abstractmethod
    def create_if_absent(self, record: TrendRecord) -> bool:
        """Insert only if no record shares the dedup key. True if inserted."""

    @abstractmethod
    def get_trend(self, trend_id: str) -> Optional[TrendRecord]:
        ...

    @abstractmethod
    def find_active(
        self,
        min_relevance: int,
        lifecycle_in: Optional[Sequence[LifecycleStage]],
        limit: int,
        now: datetime,
        pillar: Optional[str] = None,
    ) -> List[TrendRecord]:
        """Non-expired records, viral coefficient desc (nulls last) then relevance desc."""

    @abstractmethod
    def find_recent(
        self,
        lifecycle_in: Sequence[LifecycleStage],
        limit: int,
        now: datetime,
    ) -> List[TrendRecord]:
        """Non-expired records, newest capture first."""

    @abstractmethod
    def find_history(self, keyword: str, since: datetime) -> List[TrendRecord]:
        """All captures of a keyword (case-insensitive, any source) since a date, oldest first."""

    @abstractmethod
    def record_experiment(self, experiment: AlgorithmExperiment) -> None:
        ...

    @abstractmethod
    def get_experiment(self, experiment_id: str) -> Optional[AlgorithmExperiment]:
        ...

    @abstractmethod
    def complete_experiment(
        self,
        experiment_id: str,
        actual_peak_at: datetime,
        outcome: ExperimentOutcome,
        completed_at: datetime,
    ) -> AlgorithmExperiment:
        """Apply the outcome and mark COMPLETED. One-way."""

    @abstractmethod
    def find_completed_experiments(self, limit: int) -> List[AlgorithmExperiment]:
        """Most recently completed first."""
