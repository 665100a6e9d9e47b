"""Logging and metrics for workagent."""
