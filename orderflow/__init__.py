"""OrderFlow - order placement core for the storefront"""

__version__ = "1.0.0"
