"""Job-lifecycle gateway for repository history visualizations."""

__version__ = "1.0.0"
