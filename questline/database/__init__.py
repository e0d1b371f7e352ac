"""Persistence schema for the quest engine."""
