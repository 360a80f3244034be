"""
ChainGuardian — Solana wallet risk analysis over a coordinated worker swarm.

Submitted analysis tasks are queued by priority, assigned to capability-tagged
workers, executed in background threads and polled for results. Modular
architecture: swarm coordinator, analytics (token / transaction / risk scans),
API server, configuration and logging.
"""

__version__ = "0.1.0"
