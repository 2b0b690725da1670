"""Building blocks for services: contexts, errors, utilities, pools, task groups, breaker rules, discovery and balancing."""

__version__ = "0.1.0"

__all__ = [
    "balancer",
    "breaker",
    "constants",
    "context",
    "discovery",
    "errors",
    "pool",
    "rgroup",
    "utils",
]