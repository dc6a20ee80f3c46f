"""Live collector for on-chain price-direction prediction rounds."""

__version__ = "0.3.0"
