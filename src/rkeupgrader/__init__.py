"""
RKEUpgrader - RKE release resolution, etcd snapshots and cluster upgrades
"""

__version__ = "0.1.0"

from .core import RkeUpgrader
from .errors import UpgraderError

__all__ = ["RkeUpgrader", "UpgraderError"]
