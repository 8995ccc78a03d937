"""
baristabot: market maker and trading agents for an on-chain limit-order exchange.
"""

__version__ = "0.1.0"
