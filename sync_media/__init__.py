"""sync-media – upload local photo/video folders to a self-hosted asset server."""

__version__ = "0.1.0"
