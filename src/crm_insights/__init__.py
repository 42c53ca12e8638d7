"""Predictive opportunity scoring: deal risk, next best actions and lead scores."""

__version__ = "0.1.0"
