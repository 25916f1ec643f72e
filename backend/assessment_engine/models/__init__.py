from .attempt import AssessmentAttempt, AssessmentResult, AttemptStatus

__all__ = ["AssessmentAttempt", "AssessmentResult", "AttemptStatus"]
