"""
Local static storage: one directory per active subdomain under a root.

A save writes the whole file set into a staging directory, checks every
file landed, then swaps it into place, so a reader never sees a mix of
two versions. Removing a directory is always best-effort.
"""
import logging
import shutil
import uuid
from pathlib import Path
from typing import Dict, Optional, Union

from errors import StorageError, ValidationError
from subdomains import SUBDOMAIN_RE

logger = logging.getLogger(__name__)

Log = Union[logging.Logger, logging.LoggerAdapter]


class LocalSiteStore:
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def site_dir(self, subdomain: str) -> Path:
        if not isinstance(subdomain, str) or not SUBDOMAIN_RE.match(subdomain):
            raise ValidationError("Invalid subdomain", {"subdomain": subdomain})
        return self.root / subdomain

    def exists(self, subdomain: str) -> bool:
        return self.site_dir(subdomain).is_dir()

    def read(self, subdomain: str, filename: str) -> Optional[str]:
        if not filename or "/" in filename or "\\" in filename or filename.startswith("."):
            return None
        path = self.site_dir(subdomain) / filename
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def save(self, subdomain: str, files: Dict[str, str], log: Log = logger) -> Path:
        target = self.site_dir(subdomain)
        token = uuid.uuid4().hex[:8]
        staging = self.root / f".staging-{subdomain}-{token}"
        retired = self.root / f".retired-{subdomain}-{token}"

        try:
            self.root.mkdir(parents=True, exist_ok=True)
            staging.mkdir()
            for name, content in files.items():
                (staging / name).write_text(content, encoding="utf-8")
            self._verify(staging, files)

            if target.exists():
                target.rename(retired)
                try:
                    staging.rename(target)
                except OSError:
                    retired.rename(target)
                    raise
            else:
                staging.rename(target)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            log.error("Saving %d files for %s failed: %s", len(files), subdomain, exc)
            raise StorageError(f"Failed to save site files: {exc}", {"subdomain": subdomain}) from exc

        log.info("Saved %d files to %s", len(files), target)
        if retired.exists():
            self._discard(retired, log)
        return target

    def remove(self, subdomain: str, log: Log = logger) -> bool:
        try:
            path = self.site_dir(subdomain)
        except ValidationError:
            log.warning("Not removing directory for invalid subdomain %r", subdomain)
            return False
        if not path.exists():
            return True
        return self._discard(path, log)

    @staticmethod
    def _verify(directory: Path, files: Dict[str, str]) -> None:
        for name, content in files.items():
            path = directory / name
            expected = len(content.encode("utf-8"))
            if not path.is_file() or path.stat().st_size != expected:
                raise OSError(f"{name} was not written completely")

    @staticmethod
    def _discard(path: Path, log: Log) -> bool:
        try:
            shutil.rmtree(path)
        except OSError as exc:
            log.warning("Could not remove %s: %s", path, exc)
            return False
        log.info("Removed %s", path)
        return True
