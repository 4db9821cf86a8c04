"""
Background scrape jobs for the HTTP layer.

A JobRunner owns one ScrapeSessionManager (one browser profile), so only
one job runs at a time. Each job records its progress events and, once
finished, the batch result.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import uuid

from pricewatch.base import BatchResult, Severity
from pricewatch.manager import ScrapeSessionManager
from pricewatch.session import SessionStore

logger = logging.getLogger(__name__)

MAX_EVENTS = 1000


class JobStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


class RunnerBusyError(Exception):
    """Raised when a job is started while another one is running."""
    pass


@dataclass
class ProgressEvent:
    percent: int
    message: str
    severity: Severity
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'percent': self.percent,
            'message': self.message,
            'severity': self.severity.value,
            'timestamp': self.timestamp.isoformat(),
        }


@dataclass
class Job:
    """One scrape run requested over HTTP."""
    session_id: str
    kind: str                               # 'products' or 'category'
    params: Dict[str, Any] = field(default_factory=dict)
    status: JobStatus = JobStatus.RUNNING
    events: List[ProgressEvent] = field(default_factory=list)
    result: Optional[BatchResult] = None
    error: Optional[str] = None
    stop_requested: bool = False
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def progress(self) -> int:
        return self.events[-1].percent if self.events else 0

    def to_dict(self, include_result: bool = True) -> Dict[str, Any]:
        data = {
            'session_id': self.session_id,
            'kind': self.kind,
            'status': self.status.value,
            'progress': self.progress,
            'stop_requested': self.stop_requested,
            'created_at': self.created_at.isoformat(),
            'error': self.error,
            'events': [event.to_dict() for event in self.events],
        }
        if include_result:
            data['result'] = self.result.to_dict() if self.result else None
        return data


class JobRunner:
    """
    Starts, tracks and stops scrape jobs.

    Usage:
        runner = JobRunner(lambda store: ScrapeSessionManager(store, **options))
        job = runner.create_products_job(urls)
        await runner.run(job)          # usually as a background task
        runner.stop(job.session_id)
    """

    def __init__(
        self,
        manager_factory: Callable[[SessionStore], ScrapeSessionManager],
        store: Optional[SessionStore] = None,
    ):
        self.store = store if store is not None else SessionStore()
        self.manager = manager_factory(self.store)
        self.jobs: Dict[str, Job] = {}

    def is_busy(self) -> bool:
        return any(job.status is JobStatus.RUNNING for job in self.jobs.values())

    def _create(self, kind: str, params: Dict[str, Any]) -> Job:
        if self.is_busy():
            raise RunnerBusyError("A scrape is already running on this browser profile")
        job = Job(session_id=uuid.uuid4().hex[:12], kind=kind, params=params)
        self.jobs[job.session_id] = job
        logger.info(f"Created {kind} job {job.session_id}")
        return job

    def create_products_job(self, urls: List[str], start_from: int = 1) -> Job:
        return self._create('products', {'urls': list(urls), 'start_from': start_from})

    def create_category_job(self, url: str, max_products: int, start_from: int = 1) -> Job:
        return self._create('category', {'url': url, 'max_products': max_products, 'start_from': start_from})

    def get(self, session_id: str) -> Optional[Job]:
        return self.jobs.get(session_id)

    def active_ids(self) -> List[str]:
        return self.store.active_ids()

    def stop(self, session_id: str) -> bool:
        """Request a cooperative stop. Returns False for unknown or finished jobs."""
        job = self.jobs.get(session_id)
        if job is None or job.status is not JobStatus.RUNNING:
            return False
        job.stop_requested = True
        self.manager.stop(session_id)
        return True

    def stop_all(self):
        for session_id in self.active_ids():
            self.stop(session_id)

    async def run(self, job: Job):
        """Execute a created job to completion, recording its outcome."""
        if job.stop_requested:
            job.status = JobStatus.STOPPED
            return

        def on_progress(percent: int, message: str, severity: Severity):
            job.events.append(ProgressEvent(percent, message, severity))
            del job.events[:-MAX_EVENTS]

        params = job.params
        try:
            if job.kind == 'category':
                result = await self.manager.run_category(
                    params['url'], params['max_products'], job.session_id,
                    on_progress, start_from=params['start_from'],
                )
            else:
                result = await self.manager.run_batch(
                    params['urls'], job.session_id, on_progress, start_from=params['start_from'],
                )
        except Exception as e:
            logger.exception(f"Job {job.session_id} failed")
            job.status = JobStatus.FAILED
            job.error = str(e)
            return

        job.result = result
        if result.fatal_error:
            job.status = JobStatus.FAILED
            job.error = result.fatal_error
        elif result.cancelled:
            job.status = JobStatus.STOPPED
        else:
            job.status = JobStatus.COMPLETED
        logger.info(f"Job {job.session_id} finished: {job.status.value}")


def build_runner() -> JobRunner:
    """JobRunner wired to the configured browser profile."""
    from api.config import settings

    options = settings.scraper_options()
    return JobRunner(lambda store: ScrapeSessionManager(store, **options))
