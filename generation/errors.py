"""
Error taxonomy for the problem-generation pipeline.

Only RateLimitedError and GenerationFailedError cross the
ProblemGenerator.generate_problems boundary. SecurityViolationError is raised
by the input-security layer before a pipeline run starts.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class RateLimitedError(PipelineError):
    """The model gateway exhausted its retries on rate-limit responses."""

    def __init__(self, message: str = "OpenAI rate limit exceeded. Please try again later.", attempts: int = 0):
        super().__init__(message)
        self.attempts = attempts


class GenerationFailedError(PipelineError):
    """A required stage (design or generation) failed, or produced nothing usable."""

    def __init__(self, message: str, stage: str = "generation"):
        super().__init__(message)
        self.stage = stage


class SecurityViolationError(PipelineError):
    """User-supplied material matched an attack pattern or exceeded the length ceiling."""

    def __init__(self, message: str, violation_type: str):
        super().__init__(message)
        self.violation_type = violation_type
