"""
Flight Training Tracker.

Checklist assignments, weighted training progress, and instructor/student
progress synchronization.
"""

__version__ = "0.1.0"
