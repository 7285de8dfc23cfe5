"""Custom exceptions for the job queue.

Callers can catch JobQueueError to handle every queue-level failure, or
the specific subclasses to react to one condition.
"""


class JobQueueError(Exception):
    """Base exception for job queue errors."""


class JobNotFoundError(JobQueueError):
    """Raised when a job doesn't exist.

    Attributes:
        job_id: The ID of the job that was not found.
        operation: The operation that was attempted (e.g., "complete", "cancel").
    """

    def __init__(self, job_id: str, operation: str) -> None:
        self.job_id = job_id
        self.operation = operation
        super().__init__(f"Cannot {operation} job {job_id}: not found")


class DuplicateActiveJob(JobQueueError):
    """Raised when a note already has a waiting or active job in a queue.

    Attributes:
        queue: Queue name.
        note_id: The note that already has a job in flight.
        existing_job_id: ID of the in-flight job, when known.
    """

    def __init__(
        self, queue: str, note_id: str, existing_job_id: str | None = None
    ) -> None:
        self.queue = queue
        self.note_id = note_id
        self.existing_job_id = existing_job_id
        detail = f" ({existing_job_id})" if existing_job_id else ""
        super().__init__(
            f"Note {note_id} already has an active {queue} job{detail}"
        )


class InvalidJobTransition(JobQueueError):
    """Raised when a job is not in a state that allows the operation.

    Attributes:
        job_id: The job's ID.
        state: The job's current state value.
        operation: The operation that was attempted.
    """

    def __init__(self, job_id: str, state: str, operation: str) -> None:
        self.job_id = job_id
        self.state = state
        self.operation = operation
        super().__init__(f"Cannot {operation} job {job_id} in state {state}")


class JobClaimLost(InvalidJobTransition):
    """Raised when a worker finishes a job it no longer holds.

    Happens after stale recovery hands the job to another worker.

    Attributes:
        worker_id: The worker that tried to finish the job.
        holder: The worker that holds the claim now, if any.
    """

    def __init__(
        self, job_id: str, operation: str, worker_id: str, holder: str | None
    ) -> None:
        self.job_id = job_id
        self.state = "active"
        self.operation = operation
        self.worker_id = worker_id
        self.holder = holder
        JobQueueError.__init__(
            self,
            f"Cannot {operation} job {job_id}: claimed by {holder}, not {worker_id}",
        )


class QueueValidationError(JobQueueError, ValueError):
    """Raised for an unknown queue name or a malformed payload.

    The message is safe to return to operational callers.
    """


class SupervisorError(JobQueueError):
    """Opaque failure surfaced by the queue supervisor.

    The message never contains provider or database detail. Operators
    find the full error in the logs under ``correlation_id``.
    """

    def __init__(self, message: str, correlation_id: str) -> None:
        self.correlation_id = correlation_id
        super().__init__(message)
