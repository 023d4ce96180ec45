"""Quota forecasting and anomaly detection for verification-code realms."""

__version__ = "0.1.0"
