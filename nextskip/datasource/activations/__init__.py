"""
POTA and SOTA activation sources.
"""

from nextskip.datasource.activations.pota import PotaSource
from nextskip.datasource.activations.sota import SotaSource

__all__ = ["PotaSource", "SotaSource"]
