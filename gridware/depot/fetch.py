"""Archive acquisition and extraction"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
import urllib.error
import urllib.request
from pathlib import Path

from gridware.core.exceptions import ExternalCommandError, NotFoundError
from gridware.utils.net import is_url, validate_url_scheme

logger = logging.getLogger(__name__)


def file_md5(path: Path) -> str:
    md5 = hashlib.md5()  # noqa: S324
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            md5.update(chunk)
    return md5.hexdigest()


class ArchiveFetcher:
    """Resolves an archive location to a local file.

    Remote archives are cached under ``<archives_dir>/dist`` and only
    downloaded again when the server's ETag no longer matches the cached
    file's MD5.
    """

    def __init__(self, archives_dir: str | Path, timeout: int = 10) -> None:
        self.dist_dir = Path(archives_dir) / "dist"
        self.timeout = timeout

    def cached_path(self, location: str) -> Path:
        return self.dist_dir / os.path.basename(location.rstrip("/"))

    def fetch(self, location: str) -> Path:
        """Local path of the archive, downloading it when needed.

        A cached download is reused when the server's ETag equals its md5;
        otherwise the archive is fetched again over the cached copy.

        Args:
            location: filesystem path or http(s) URL

        Returns:
            Path: the local archive, under ``<archives>/dist`` for URLs

        Raises:
            NotFoundError: local path does not exist
            ExternalCommandError: download failed
        """
        if not is_url(location):
            path = Path(location)
            if not path.exists():
                raise NotFoundError(f"Archive not found at {location}")
            return path

        validate_url_scheme(location, context="archive download")
        target = self.cached_path(location)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.exists() and self.up_to_date(target, location):
            logger.info("SKIP %s (existing archive is current)", target.name)
            return target

        # an interrupted download never shadows a good cached archive
        partial = target.with_name(target.name + ".download")
        logger.info("Downloading %s", location)
        try:
            with urllib.request.urlopen(location, timeout=self.timeout) as resp, \
                    open(partial, "wb") as out:  # nosec B310
                shutil.copyfileobj(resp, out)
        except (urllib.error.URLError, OSError) as e:
            partial.unlink(missing_ok=True)
            raise ExternalCommandError(f"Unable to download archive for import: {location} ({e})") from e
        os.replace(partial, target)
        logger.info("Saved %s", target)
        return target

    def remote_etag(self, url: str) -> str | None:
        req = urllib.request.Request(url, method="HEAD")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                etag = resp.headers.get("ETag")
        except (urllib.error.URLError, OSError) as e:
            logger.debug("HEAD %s failed: %s", url, e)
            return None
        return etag.strip('"') if etag else None

    def up_to_date(self, target: Path, url: str) -> bool:
        remote = self.remote_etag(url)
        return remote is not None and remote == file_md5(target)


def extract_archive(archive: Path, dest: Path) -> None:
    """Unpack a gzip tarball into ``dest``.

    Raises:
        ExternalCommandError: unreadable or unsafe archive
    """
    try:
        with tarfile.open(archive, "r:gz") as tf:
            tf.extractall(path=dest, filter="data")
    except (tarfile.TarError, OSError) as e:
        raise ExternalCommandError(f"Unable to extract tarball {archive}: {e}") from e
