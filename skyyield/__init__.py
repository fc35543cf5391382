"""SkyYield partner commissions service."""

__version__ = "0.3.0"
