class PipelineError(Exception):
    """Base for every fatal listing-submission failure surfaced to the caller."""

    code = "PIPELINE_ERROR"

    def __init__(self, message: str, *, job_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class ImageStagingError(PipelineError):
    code = "IMAGE_STAGING_FAILED"


class SubmissionError(PipelineError):
    code = "SUBMISSION_FAILED"


class JobFailedError(PipelineError):
    code = "JOB_FAILED"


class JobTimeoutError(PipelineError):
    """The poll bound ran out with no terminal state; the job may still finish server-side."""

    code = "JOB_TIMED_OUT"


class JobPollError(PipelineError):
    """A transient status-query failure on the final allowed attempt."""

    code = "JOB_POLL_FAILED"
