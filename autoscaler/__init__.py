"""Server pool autoscaling: records, metrics, HTTP handlers and notifications."""

__version__ = "1.0.0"