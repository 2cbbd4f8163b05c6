"""
Hedge fund trading-cycle engine: signal -> risk -> execution -> analytics -> learning
"""

__version__ = "1.0.0"
