"""HTTP API for the quota modeler."""
