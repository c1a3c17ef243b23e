"""Work with an implementation guide that is not published yet.

A directory holding an unpacked package can be registered under the
``local`` registry. It is served in place and never downloaded, while its
dependencies are still fetched from the registry.
"""

from pathlib import Path

from fhircache import Downloader, PackageCache, RegistryClient


cache = PackageCache(
    Path("./fhir-packages"),
    clients={"default": RegistryClient()},
)

# ./my-ig/package.json declares {"name": "my.ig", "version": "0.1.0", ...}
ref = cache.add_local_package("my.ig", "0.1.0", Path("./my-ig"))
package = cache.get(ref)

downloader = Downloader(cache)
for name, version in package.dependencies().items():
    downloader.add("default", name, version, include_dependencies=True)
downloader.start()

for dependency in cache.list_packages():
    print(dependency)
cache.close()
