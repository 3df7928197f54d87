"""Chat-driven per-user, per-workspace task tracker."""

__version__ = "0.1.0"
