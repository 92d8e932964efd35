"""
Error types for the analysis engine.

Exceptions are raised at the orchestration seams (client calls, content
acquisition, synthesis). Framework evaluation errors are never raised out of
the runner; they travel as FrameworkFailure data tagged with an ErrorKind.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification recorded on failed steps and in the run error log"""

    ACQUISITION = "AcquisitionFailure"
    FRAMEWORK = "FrameworkFailure"
    TIMEOUT = "TimeoutFailure"
    SYNTHESIS = "SynthesisFailure"
    CANCELLED = "Cancelled"


class AnalysisServiceError(Exception):
    """Base class for errors raised by the analysis engine"""

    pass


class InvalidUrlError(AnalysisServiceError, ValueError):
    """Raised when an analysis is requested for a malformed URL"""

    pass


class NotFoundError(AnalysisServiceError, LookupError):
    """Raised for an unknown run id or step id"""

    pass


class InvalidTransitionError(AnalysisServiceError):
    """Raised when a step or run is asked to move to a state it cannot reach"""

    pass


class TrackerUnavailableError(AnalysisServiceError, RuntimeError):
    """Raised when the progress store cannot be read or written"""

    pass


class AcquisitionFailure(AnalysisServiceError):
    """Content could not be scraped; fatal for the run"""

    pass


class SynthesisFailure(AnalysisServiceError):
    """The report could not be produced from the available framework results"""

    pass
