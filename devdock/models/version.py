"""
Version descriptor model used for the bundled version file and the remote manifest
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class VersionDescriptor:
    """A released application version and where to download it"""

    version: str
    url: str
    checksum: Optional[str] = None
    size: Optional[int] = None
    release_notes: Optional[str] = None
    released_at: Optional[datetime] = None

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], platform_name: Optional[str] = None
    ) -> "VersionDescriptor":
        """
        Decode a version record.

        A manifest may carry per-platform download descriptors under
        ``downloads``; the entry for ``platform_name`` overrides the top-level
        url, checksum and size.

        Raises:
            ValueError: if the record is not an object or lacks version/url
        """
        if not isinstance(data, dict):
            raise ValueError("Version record must be a JSON object")

        url = data.get("url")
        checksum = data.get("checksum") or data.get("sha256")
        size = data.get("size")

        downloads = data.get("downloads")
        if platform_name and isinstance(downloads, dict):
            download = downloads.get(platform_name)
            if isinstance(download, dict):
                url = download.get("url", url)
                checksum = download.get("checksum", download.get("sha256", checksum))
                size = download.get("size", size)

        version = data.get("version")
        if not version or not url:
            raise ValueError("Version record requires 'version' and 'url'")

        return cls(
            version=str(version),
            url=str(url),
            checksum=str(checksum) if checksum else None,
            size=int(size) if size is not None else None,
            release_notes=data.get("releaseNotes"),
            released_at=_parse_timestamp(data.get("releasedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"version": self.version, "url": self.url}
        if self.checksum:
            data["checksum"] = self.checksum
        if self.size is not None:
            data["size"] = self.size
        if self.release_notes:
            data["releaseNotes"] = self.release_notes
        if self.released_at:
            data["releasedAt"] = self.released_at.isoformat()
        return data
