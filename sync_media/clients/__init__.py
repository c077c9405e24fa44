"""sync-media clients – remote services the pipeline talks to."""

from .server import AssetServerClient, CheckItem, ServerError, UploadForm

__all__ = ["AssetServerClient", "CheckItem", "ServerError", "UploadForm"]
