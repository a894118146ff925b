"""
Command-line entry points for logarchive.
"""

from .interactive import InteractiveSession, WizardState

__all__ = ['InteractiveSession', 'WizardState']
