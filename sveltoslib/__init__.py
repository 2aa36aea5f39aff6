"""Building blocks for controllers that deploy add-ons across many clusters.

Includes a threaded request deployer, owner-reference bookkeeping, kubeconfig
Secrets, run-time log levels and CRD event handling.
"""

__version__ = "0.1.0"