"""SellFast: photo-to-listing assistant for secondhand sellers."""

__version__ = "0.1.0"
