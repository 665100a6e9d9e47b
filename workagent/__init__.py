"""workagent -- distributes manifest bundles from a hub cluster to a spoke cluster."""

__version__ = "0.1.0"
