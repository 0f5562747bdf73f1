"""
hedgebot: cross-venue delta-neutral hedge engine.

Maker orders rest on one venue; every fill is mirrored on the taker venue
in the opposite direction for the same symbol.
"""

__version__ = "0.1.0"
