"""
Authentication, step-up verification and session issuing.
"""

from .authentication import AuthenticationService
from .sessions import SessionIssuer
from .step_up import CodeChecker, DemoCodeChecker, StepUpVerifier

__all__ = [
    "AuthenticationService",
    "CodeChecker",
    "DemoCodeChecker",
    "SessionIssuer",
    "StepUpVerifier",
]
