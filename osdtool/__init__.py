"""Building blocks for managed OpenShift work: service logs, organizations,
egress check input, packet captures, STS policies, federated roles and upgrades."""

__version__ = "0.1.0"