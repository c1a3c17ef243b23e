"""Progress reporting for cache downloads."""

from fhircache.progress.log_listener import LoggingCacheListener
from fhircache.progress.rich_progress import RichCacheListener


__all__ = ["LoggingCacheListener", "RichCacheListener"]
