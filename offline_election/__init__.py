"""Run Substrate NPoS elections offline against a snapshot of chain state."""

__version__ = "0.1.0"
