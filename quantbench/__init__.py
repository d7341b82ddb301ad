"""
quantbench - multi-timeframe strategy runtime and backtester.
"""

__version__ = "0.1.0"
