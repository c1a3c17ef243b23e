"""Basic fhircache usage.

This example shows how to fetch a single FHIR package into the cache and
read its manifest and resource files.
"""

from pathlib import Path

from fhircache import PackageCache, PackageRef, RegistryClient


# Packages live under <root>/<registry>/<name>/<version>
cache = PackageCache(
    Path("./fhir-packages"),
    clients={"default": RegistryClient("https://packages.simplifier.net")},
)

ref = PackageRef("default", "hl7.fhir.r4.core", "4.0.1")

with cache:
    # Downloads on first use, then served from disk
    package = cache.get_or_fetch(ref)

print(f"{package.name}@{package.version} in {package.path}")
print(f"FHIR versions: {', '.join(package.fhir_versions)}")
print(f"{len(package.files())} resource files")

# Check without downloading
if cache.has(ref):
    print(f"Cached at {cache.path(ref)}")
