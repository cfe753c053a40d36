"""
Live spot stream: message parsing, enrichment and batched persistence.
"""

from nextskip.datasource.spots.pskreporter import parse_message
from nextskip.datasource.spots.stream import SpotStreamProcessor

__all__ = ["SpotStreamProcessor", "parse_message"]
