"""
Guideline Desk

Review and moderation of community-contributed development
guidelines.
"""

import importlib.metadata

__version__ = importlib.metadata.version("guideline-desk")
