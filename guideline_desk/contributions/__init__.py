"""
Contribution lifecycle: schemas, validation, state machine and engine.

Import the engine from ``guideline_desk.contributions.engine``; this package
init stays free of database imports so the ORM layer can depend on the enums.
"""

from .enums import ContributionStatus, ModeratorAction, ReviewDecision

__all__ = ["ContributionStatus", "ModeratorAction", "ReviewDecision"]
