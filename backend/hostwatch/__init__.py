"""hostwatch - host resource monitoring, alerting and forecasting."""

__version__ = "1.0.0"
