"""
ca_bundle_sync — trusted CA bundle reconciliation for Kubernetes.

Merges the node's system trust bundle, the user-supplied bundle referenced
by the cluster Proxy, and the cloud provider's bundle into a single
ConfigMap, and keeps that ConfigMap converged under deletion or tampering.

Built on the Railway-Oriented Programming (ROP) helpers in
ca_bundle_sync.railway for explicit, composable error handling.
"""

__version__ = "0.1.0"
