"""
Coolscool practice engine.

Tracks per-concept mastery, rolls it up into topic proficiency bands and
runs the quiz sessions that feed attempts into the mastery ledger.
"""

__version__ = "1.0.0"
