"""Download packages together with their dependencies.

The Downloader walks manifest dependencies on a worker pool. A package
required by several others is fetched once per run.
"""

from fhircache import CacheSettings, Downloader, PackageCache, RichCacheListener


# Reads FHIR_CACHE, FHIR_REGISTRY and FHIR_REGISTRY_TOKEN; explicit values win
settings = CacheSettings.from_env(workers=4)

with PackageCache.from_settings(settings) as cache, RichCacheListener() as progress:
    cache.add_listener(progress)

    downloader = Downloader(cache).workers(settings.workers)
    downloader.add("default", "hl7.fhir.us.core", "6.1.0", include_dependencies=True)
    downloader.add("default", "hl7.fhir.uv.ips", "1.1.0", include_dependencies=True)
    count = downloader.start()

print(f"Fetched {count} package(s)")

# Re-download everything, e.g. after a registry republished a version
with PackageCache.from_settings(settings) as cache:
    downloader = Downloader(cache).force()
    downloader.add("default", "hl7.fhir.us.core", "6.1.0")
    downloader.start()
