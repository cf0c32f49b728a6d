"""Sequential hive-login diagnostic run.

Checks: target and Hive clients, standard and elevated, over the default
and explicit connections.
"""

from cluster_broker.runner.runner import (
    ALL_CHECKS,
    CHECKS_BY_NAME,
    DEFAULT_REASON,
    ClientCheck,
    HiveLoginRunner,
)

__all__ = [
    "ALL_CHECKS",
    "CHECKS_BY_NAME",
    "ClientCheck",
    "DEFAULT_REASON",
    "HiveLoginRunner",
]
