"""SoloSphere backend: job and bid marketplace API."""

__version__ = "0.1.0"
