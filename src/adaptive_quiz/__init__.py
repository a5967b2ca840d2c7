"""Adaptive self-quiz engine with weighted question selection."""
