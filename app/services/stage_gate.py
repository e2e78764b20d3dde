"""
Stage Dependency Gate
Decides which production stages a job may move into
"""
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Set

from .job_types import Job, JobStatus
from .normalization import lookup_by_method, normalize_key


class StageDependencyGate(ABC):
    """Contract consumed by the scheduling engine and the auto-scheduler"""

    @abstractmethod
    def available_stages(self, job: Job, all_jobs: Iterable[Job]) -> Set[str]:
        """
        Stages the job may be placed into

        Args:
            job: Job carrying the proposed stage as current_stage
            all_jobs: The working set of jobs (holds the recorded state)

        Returns:
            Set of stage ids
        """

    @abstractmethod
    def is_ready(self, job: Job, all_jobs: Iterable[Job]) -> Set[str]:
        """Stages the job is currently ready for"""


class SequentialStageGate(StageDependencyGate):
    """
    Default gate: stages run in their configured order

    A job may stay on any stage it already reached and move one stage
    forward. Predecessor jobs that are not done hold the job where it is.
    """

    def __init__(self, stages_by_method: Dict[str, List[str]]):
        self.stages_by_method = stages_by_method

    def _stages(self, method: str) -> List[str]:
        return list(lookup_by_method(self.stages_by_method, method, []) or [])

    def _recorded(self, job: Job, all_jobs: List[Job]) -> Job:
        return next((j for j in all_jobs if j.id == job.id), job)

    def _predecessors_done(self, job: Job, all_jobs: List[Job]) -> bool:
        if not job.predecessor_ids:
            return True
        by_id = {j.id: j for j in all_jobs}
        for pred_id in job.predecessor_ids:
            pred = by_id.get(pred_id)
            if pred is None or pred.status != JobStatus.DONE:
                return False
        return True

    def _reached_index(self, stages: List[str], stage: Optional[str]) -> int:
        stage = normalize_key(stage)
        if stage in stages:
            return stages.index(stage)
        return 0

    def available_stages(self, job: Job, all_jobs: Iterable[Job]) -> Set[str]:
        all_jobs = list(all_jobs)
        stages = self._stages(job.decoration_method)
        if not stages:
            return set()
        recorded = self._recorded(job, all_jobs)
        reached = self._reached_index(stages, recorded.current_stage)
        if self._predecessors_done(recorded, all_jobs):
            reached += 1
        return set(stages[:reached + 1])

    def is_ready(self, job: Job, all_jobs: Iterable[Job]) -> Set[str]:
        all_jobs = list(all_jobs)
        stages = self._stages(job.decoration_method)
        recorded = self._recorded(job, all_jobs)
        if not stages or not self._predecessors_done(recorded, all_jobs):
            return set()
        return set(stages[:self._reached_index(stages, recorded.current_stage) + 1])
