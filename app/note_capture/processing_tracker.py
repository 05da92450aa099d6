"""
Processing tracker for note analysis jobs.
Remembers which notes are being analyzed for which owner, and why a job failed.
"""
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

PROCESSING = 'processing'
COMPLETED = 'completed'
FAILED = 'failed'


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AnalysisJob:
    """A single note analysis job."""
    knowledge_id: str
    owner_id: str
    status: str  # 'processing', 'completed', 'failed'
    started_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'knowledge_id': self.knowledge_id,
            'owner_id': self.owner_id,
            'status': self.status,
            'started_at': self.started_at.isoformat(),
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'error_message': self.error_message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AnalysisJob":
        completed_at = data.get('completed_at')
        return cls(
            knowledge_id=data['knowledge_id'],
            owner_id=data['owner_id'],
            status=data['status'],
            started_at=datetime.fromisoformat(data['started_at']),
            completed_at=datetime.fromisoformat(completed_at) if completed_at else None,
            error_message=data.get('error_message'),
        )


class ProcessingTracker:
    """Thread-safe tracker for note analysis jobs."""

    def __init__(self, persistence_file: Optional[Path] = None):
        """Initialize the tracker.

        Args:
            persistence_file: Optional JSON file keeping finished jobs across restarts
        """
        self._lock = threading.RLock()
        self._jobs: Dict[Tuple[str, str], AnalysisJob] = {}
        self._persistence_file = persistence_file
        self._load_persistence()

    def _load_persistence(self):
        if not self._persistence_file or not self._persistence_file.exists():
            return
        try:
            data = json.loads(self._persistence_file.read_text(encoding='utf-8'))
            with self._lock:
                for job_data in data.get('jobs', []):
                    job = AnalysisJob.from_dict(job_data)
                    if job.status == PROCESSING:
                        # The thread that owned it died with the previous process
                        job.status = FAILED
                        job.completed_at = _now()
                        job.error_message = job.error_message or "分析被中断，请重新提交"
                    self._jobs[(job.knowledge_id, job.owner_id)] = job
        except (OSError, ValueError, KeyError) as e:
            logger.warning("Failed to load processing tracker persistence: %s", e)

    def _save_persistence(self):
        """Write all jobs; caller holds the lock."""
        if not self._persistence_file:
            return
        try:
            self._persistence_file.parent.mkdir(parents=True, exist_ok=True)
            payload = {'jobs': [job.to_dict() for job in self._jobs.values()]}
            self._persistence_file.write_text(
                json.dumps(payload, indent=2, ensure_ascii=False), encoding='utf-8'
            )
        except OSError as e:
            logger.warning("Failed to save processing tracker persistence: %s", e, exc_info=True)

    def start_processing(self, knowledge_id: str, owner_id: str) -> bool:
        """Start tracking a job.

        Returns:
            True if the job was started, False if it is already processing
        """
        with self._lock:
            key = (knowledge_id, owner_id)
            existing = self._jobs.get(key)
            if existing and existing.status == PROCESSING:
                logger.info("Analysis already running for %s (owner %s)", knowledge_id, owner_id)
                return False
            self._jobs[key] = AnalysisJob(
                knowledge_id=knowledge_id,
                owner_id=owner_id,
                status=PROCESSING,
                started_at=_now(),
            )
            self._save_persistence()
            logger.info("Started analysis job for %s (owner %s), %d jobs tracked",
                        knowledge_id, owner_id, len(self._jobs))
            return True

    def mark_completed(self, knowledge_id: str, owner_id: str):
        with self._lock:
            job = self._jobs.get((knowledge_id, owner_id))
            if job:
                job.status = COMPLETED
                job.completed_at = _now()
                job.error_message = None
                self._save_persistence()

    def mark_failed(self, knowledge_id: str, owner_id: str, error_message: str = None):
        with self._lock:
            job = self._jobs.get((knowledge_id, owner_id))
            if job:
                job.status = FAILED
                job.completed_at = _now()
                job.error_message = error_message
                self._save_persistence()
                logger.info("Analysis failed for %s (owner %s): %s", knowledge_id, owner_id, error_message)

    def get_job(self, knowledge_id: str, owner_id: str) -> Optional[AnalysisJob]:
        with self._lock:
            return self._jobs.get((knowledge_id, owner_id))

    def get_user_jobs(self, owner_id: str) -> List[AnalysisJob]:
        """All jobs of an owner, newest first."""
        with self._lock:
            jobs = [job for (_, oid), job in self._jobs.items() if oid == owner_id]
        jobs.sort(key=lambda j: j.started_at, reverse=True)
        return jobs

    def get_processing_jobs(self, owner_id: str) -> List[AnalysisJob]:
        return [job for job in self.get_user_jobs(owner_id) if job.status == PROCESSING]

    def dismiss_job(self, knowledge_id: str, owner_id: str):
        """Forget a job once its outcome has been delivered."""
        with self._lock:
            if self._jobs.pop((knowledge_id, owner_id), None):
                self._save_persistence()

    def cleanup_old_jobs(self, max_age_hours: int = 24) -> int:
        """Drop finished jobs older than ``max_age_hours``."""
        cutoff = _now() - timedelta(hours=max_age_hours)
        with self._lock:
            stale = [
                key for key, job in self._jobs.items()
                if job.status in (COMPLETED, FAILED) and job.completed_at and job.completed_at < cutoff
            ]
            for key in stale:
                del self._jobs[key]
            if stale:
                self._save_persistence()
                logger.info("Cleaned up %d old analysis jobs", len(stale))
        return len(stale)
