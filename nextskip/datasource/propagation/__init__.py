"""
Solar indices and band condition sources.
"""

from nextskip.datasource.propagation.hamqsl import HamQslBandSource, HamQslSolarSource
from nextskip.datasource.propagation.noaa import NoaaSwpcSource

__all__ = ["HamQslBandSource", "HamQslSolarSource", "NoaaSwpcSource"]
