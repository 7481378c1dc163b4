"""Submission of mapped measurements to the measurement API.

The pipeline never talks to the network itself. Callers inject a
MeasurementClient; InMemoryMeasurementClient stands in for the API in tests
and offline runs.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional, Dict, List

import structlog

from .exceptions import SubmissionError
from .mappers import MeasurementMapper
from .models import BatchSubmissionResult, MeasurementCreateRequest, SubmissionSummary

logger = structlog.get_logger(__name__)

# Upper bound the measurement API accepts per batch request
API_MAX_BATCH_SIZE = 100


class MeasurementClient(ABC):
    """Data-access strategy for creating measurements."""

    @abstractmethod
    def create_measurements(
        self, project_id: str, batch: List[MeasurementCreateRequest]
    ) -> BatchSubmissionResult:
        """Create a batch of measurements.

        Raises:
            SubmissionError: If the batch is rejected
        """


class InMemoryMeasurementClient(MeasurementClient):
    """Keeps submitted measurements in memory, per project."""

    def __init__(self, max_batch_size: int = API_MAX_BATCH_SIZE):
        self.max_batch_size = max_batch_size
        self.created: Dict[str, List[MeasurementCreateRequest]] = {}
        self.batches_received = 0

    def create_measurements(
        self, project_id: str, batch: List[MeasurementCreateRequest]
    ) -> BatchSubmissionResult:
        if not batch:
            raise SubmissionError("Batch is empty", batch_size=0)
        if len(batch) > self.max_batch_size:
            raise SubmissionError(
                f"Batch of {len(batch)} exceeds the limit of {self.max_batch_size}",
                batch_size=len(batch),
            )
        foreign = [m for m in batch if m.project_id != project_id]
        if foreign:
            raise SubmissionError(
                f"{len(foreign)} measurement(s) belong to a different project",
                batch_size=len(batch),
            )

        self.created.setdefault(project_id, []).extend(batch)
        self.batches_received += 1
        return BatchSubmissionResult(success=True, created_count=len(batch))


def submit_measurements(
    client: MeasurementClient,
    measurements: List[MeasurementCreateRequest],
    batch_size: int = API_MAX_BATCH_SIZE,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> SubmissionSummary:
    """Submit measurements batch by batch.

    Batches are sent in order. A rejected batch is recorded and the remaining
    batches are still sent; nothing is retried.

    Args:
        client: Measurement API client
        measurements: Requests to submit; all must share one project id
        batch_size: Measurements per request (1-100)
        on_progress: Called with (submitted so far, total) after each batch

    Returns:
        Submission summary
    """
    if not 1 <= batch_size <= API_MAX_BATCH_SIZE:
        raise ValueError(f"batch_size must be between 1 and {API_MAX_BATCH_SIZE}")

    batches = MeasurementMapper.chunk_measurements(measurements, batch_size)
    summary = SubmissionSummary(total_measurements=len(measurements), total_batches=len(batches))
    log = logger.bind(component="submission", batches=len(batches))
    log.info("Submitting measurements", total=len(measurements))

    processed = 0
    for index, batch in enumerate(batches):
        project_id = batch[0].project_id
        try:
            result = client.create_measurements(project_id, batch)
        except SubmissionError as e:
            result = BatchSubmissionResult(success=False, error=e.message)

        if result.success:
            summary.submitted += result.created_count
        else:
            summary.failed += len(batch)
            summary.errors.append(f"Batch {index + 1}: {result.error}")
            log.warning("Batch rejected", batch=index + 1, size=len(batch), error=result.error)

        processed += len(batch)
        if on_progress:
            on_progress(processed, len(measurements))

    log.info("Submission finished", submitted=summary.submitted, failed=summary.failed)
    return summary
