"""Error handling patterns with recovery hints.

This example demonstrates how to handle common errors and use
the recovery_hint property to provide actionable guidance.
"""

from pathlib import Path

import httpx

from fhircache import (
    CancellationToken,
    CancelledError,
    Downloader,
    # Exceptions
    FhirCacheError,
    Package,
    PackageCache,
    PackageNotFoundError,
    PackageRef,
    RegistryClient,
    StatusCodeError,
)


cache = PackageCache(
    Path("./fhir-packages"),
    clients={"default": RegistryClient("https://packages.simplifier.net")},
)


# Pattern 1: Read only what is already cached
def open_offline(ref: PackageRef) -> Package | None:
    """Open a cached package without touching the network."""
    try:
        return cache.get(ref)
    except PackageNotFoundError as e:
        # recovery_hint suggests the download command
        print(f"Hint: {e.recovery_hint}")
        return None


# Pattern 2: Handle registry answers
def fetch_or_report(ref: PackageRef) -> Package | None:
    """Fetch a package, reporting missing versions."""
    try:
        return cache.get_or_fetch(ref)
    except StatusCodeError as e:
        print(f"Registry answered {e.status_code} for {e.url}")
        print(f"Hint: {e.recovery_hint}")
        return None


# Pattern 3: Bound a run in time
def download_with_deadline(ref: PackageRef, seconds: float) -> int:
    """Stop the whole run (including dependencies) after a deadline."""
    token = CancellationToken()
    token.cancel_after(seconds)
    downloader = Downloader(cache)
    downloader.add(ref.registry, ref.name, ref.version, include_dependencies=True)
    try:
        return downloader.start(token)
    except CancelledError:
        print("Download cancelled; partially fetched packages were removed")
        return 0


# Pattern 4: Catch-all for library and network errors
def fetch_safe(ref: PackageRef) -> Package | None:
    """Fetch a package with comprehensive error handling."""
    try:
        return cache.get_or_fetch(ref)
    except FhirCacheError as e:
        print(f"Error: {e}")
        if e.recovery_hint:
            print(f"Hint: {e.recovery_hint}")
        return None
    except httpx.HTTPError as e:
        # Transport failures are not wrapped
        print(f"Network error: {e}")
        return None


if __name__ == "__main__":
    ref = PackageRef.parse("hl7.fhir.r4.core@4.0.1")
    if open_offline(ref) is None:
        fetch_safe(ref)
    cache.close()
