"""workagent command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``workagent`` script).
"""

from workagent.cli.main import cli

__all__ = ["cli"]
