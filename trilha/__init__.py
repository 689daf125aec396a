"""Trilha - learner progression and sequential gating engine."""

__version__ = "0.1.0"
