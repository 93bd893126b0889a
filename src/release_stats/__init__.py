"""release-stats: GitHub release statistics and dashboard exports."""

__version__ = "0.1.0"
