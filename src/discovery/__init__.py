"""
Discovery module for homeserver probing and federation crawling
"""

from .manager import FederationDiscovery
from .matrix_probe import MatrixProbe
from .models import DiscoveredInfo, DiscoveryRunResult, ProbeError

__all__ = ['FederationDiscovery', 'MatrixProbe', 'DiscoveredInfo', 'DiscoveryRunResult', 'ProbeError']
