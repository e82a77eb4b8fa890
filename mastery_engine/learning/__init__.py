"""
Learning Module - store-backed mastery tracking.
"""

from mastery_engine.learning.mastery_tracker import KeyLockRegistry, MasteryTracker, MasteryUpdate

__all__ = ["KeyLockRegistry", "MasteryTracker", "MasteryUpdate"]
