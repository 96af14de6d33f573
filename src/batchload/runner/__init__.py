"""
Run orchestration for batch loading.
"""

from .batch_runner import BatchRunner, process_file
from .job_executor import JobExecutor
from .request_resolver import RequestResolver
from .result_sink import ProgressReporter, ResultSink
from .run_tracker import RunTracker

__all__ = [
    "BatchRunner",
    "process_file",
    "JobExecutor",
    "RequestResolver",
    "ProgressReporter",
    "ResultSink",
    "RunTracker",
]
