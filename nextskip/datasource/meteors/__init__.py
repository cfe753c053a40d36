"""
Meteor shower almanac source.
"""

from nextskip.datasource.meteors.loader import MeteorShowerSource, MeteorShowerTemplate

__all__ = ["MeteorShowerSource", "MeteorShowerTemplate"]
