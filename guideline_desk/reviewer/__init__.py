"""
Automated quality review.

Reviewers assess submissions; the dispatcher and worker loop carry review
requests from the engine to a reviewer and the results back.
"""

from .base import QualityReviewer, ReviewRequest, StubReviewer, get_reviewer

__all__ = ["QualityReviewer", "ReviewRequest", "StubReviewer", "get_reviewer"]
