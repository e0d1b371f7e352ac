"""Questline: quest generation, progress tracking, streaks and rewards for learners."""

__version__ = "1.0.0"
