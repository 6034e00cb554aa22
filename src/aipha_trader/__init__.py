"""Session-gated market data gateway for the AIpha Trader dashboard."""

__version__ = "0.1.0"
