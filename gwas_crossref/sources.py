"""
Download and cache public annotation resources.

Files are streamed into a cache directory next to a ``manifest.json`` that
records where each file came from, when, and its MD5 checksum.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import requests
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import Config
from .errors import DownloadError, SourceNotFoundError
from .logging_setup import LogCapture
from .utils import calculate_file_checksum, ensure_directory, read_json, retry_on_failure, write_json

logger = structlog.get_logger(__name__)

MANIFEST = "manifest.json"
USER_AGENT = "gwas-crossref/0.3"


@dataclass
class Resource:
    name: str
    url: str
    filename: str
    description: str = ""


def known_resources(config: Config) -> Dict[str, Resource]:
    """Resources that can be fetched by name, with URLs from the configuration."""
    return {
        "catalog": Resource(
            "catalog", config.urls.catalog, "gwas_catalog_associations.tsv",
            "NHGRI-EBI GWAS catalog, all associations with ontology annotations (GRCh38)"
        ),
        "ontology": Resource(
            "ontology", config.urls.ontology, "efo.obo",
            "Experimental Factor Ontology"
        ),
        "chromhmm": Resource(
            "chromhmm", config.urls.chromhmm, "gm12878_chromhmm.bed.gz",
            "ENCODE Broad ChromHMM segmentation of GM12878 (hg19)"
        ),
    }


def configure_session(timeout: int = 120, retries: int = 3) -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=retries,
        backoff_factor=1.0,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=("GET", "HEAD"),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    session.request = _wrap_with_timeout(session.request, timeout=timeout)
    return session


def _wrap_with_timeout(request_method, timeout: int):
    def request_with_timeout(method, url, **kwargs):
        kwargs.setdefault("timeout", timeout)
        return request_method(method, url, **kwargs)

    return request_with_timeout


class AnnotationCache:
    """A directory of downloaded resources with a checksum manifest."""

    def __init__(
        self,
        cache_dir: Path,
        session: Optional[requests.Session] = None,
        config: Optional[Config] = None,
        chunk_size: int = 1 << 16
    ):
        self.config = config or Config()
        self.cache_dir = ensure_directory(Path(cache_dir))
        self.session = session or configure_session(
            timeout=self.config.cache.timeout_seconds,
            retries=self.config.cache.retry_attempts,
        )
        self.chunk_size = chunk_size
        self.resources = known_resources(self.config)

    @classmethod
    def from_config(cls, config: Config) -> "AnnotationCache":
        return cls(config.get_cache_dir(), config=config, chunk_size=config.cache.chunk_size)

    @property
    def manifest_path(self) -> Path:
        return self.cache_dir / MANIFEST

    def manifest(self) -> Dict[str, dict]:
        return read_json(self.manifest_path, default={})

    def _record(self, name: str, entry: dict) -> None:
        manifest = self.manifest()
        manifest[name] = entry
        write_json(manifest, self.manifest_path)

    def path_for(self, name: str) -> Path:
        entry = self.manifest().get(name)
        if entry:
            return self.cache_dir / entry["filename"]
        if name in self.resources:
            return self.cache_dir / self.resources[name].filename
        return self.cache_dir / name

    def list(self) -> List[dict]:
        """Manifest entries, one per cached resource, sorted by name."""
        return [dict(name=name, **entry) for name, entry in sorted(self.manifest().items())]

    @retry_on_failure(max_attempts=2, delay=2.0, exceptions=(requests.ConnectionError,))
    def _download(self, url: str, target: Path) -> None:
        partial = target.with_name(target.name + ".part")
        try:
            with self.session.get(url, stream=True) as response:
                response.raise_for_status()
                with open(partial, "wb") as fh:
                    for chunk in response.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            fh.write(chunk)
        except requests.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise DownloadError(f"Failed to download {url}: {e}") from e
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
        partial.replace(target)

    def fetch(
        self,
        name: str,
        url: Optional[str] = None,
        filename: Optional[str] = None,
        refresh: bool = False
    ) -> Path:
        """
        Return the local path of a resource, downloading it when needed.

        Args:
            name: Resource name (a known resource or any label when ``url`` is given)
            url: Override or supply the download URL
            filename: File name inside the cache directory
            refresh: Download again even if a cached copy exists

        Raises:
            DownloadError: If the resource is unknown or the download fails
        """
        resource = self.resources.get(name)
        if resource is None and url is None:
            raise DownloadError(f"Unknown resource {name!r}; known: {sorted(self.resources)}")

        url = url or resource.url
        filename = filename or (resource.filename if resource else Path(url).name or name)
        target = self.cache_dir / filename

        if target.exists() and not refresh:
            logger.debug("Using cached resource", name=name, path=str(target))
            return target

        with LogCapture(logger, f"download {name}", url=url):
            try:
                self._download(url, target)
            except requests.RequestException as e:
                raise DownloadError(f"Failed to download {url}: {e}") from e

        self._record(name, {
            "filename": filename,
            "url": url,
            "md5": calculate_file_checksum(target),
            "size": target.stat().st_size,
            "downloaded_at": datetime.now(timezone.utc).isoformat(),
        })
        return target

    def verify(self, name: str) -> bool:
        """Check a cached file against the checksum recorded when it was fetched."""
        entry = self.manifest().get(name)
        if entry is None:
            raise SourceNotFoundError(f"{name!r} is not in the cache manifest")
        path = self.cache_dir / entry["filename"]
        if not path.exists():
            return False
        return calculate_file_checksum(path) == entry["md5"]
