"""
Admission control for throttled job execution.
"""

from .admission_controller import AdmissionController, LimiterSettings, IDLE, DONE, ERROR

__all__ = ["AdmissionController", "LimiterSettings", "IDLE", "DONE", "ERROR"]
