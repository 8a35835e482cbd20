"""Stream Capture: records a live HLS channel to disk, in broadcast order."""

__version__ = "1.0.0"
