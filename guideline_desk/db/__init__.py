"""Database layer for Guideline Desk."""
