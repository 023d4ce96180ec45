"""Core configuration for the quota modeler."""
