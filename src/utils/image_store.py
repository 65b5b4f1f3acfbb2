"""Download generated images and keep them in local storage."""

import asyncio
import io
import logging
import uuid
import zipfile
from pathlib import Path
from typing import Iterable, List, Tuple, Union

import httpx

from src.core.errors import ImageDownloadError

logger = logging.getLogger(__name__)

# Checked in order; the first substring found in the URL decides the extension.
EXTENSION_RULES: List[Tuple[str, str]] = [
    (".webp", "webp"),
    (".jpg", "jpg"),
    (".jpeg", "jpg"),
]
DEFAULT_EXTENSION = "png"

IMAGE_URL_PREFIX = "/images/"


def guess_extension(url: str) -> str:
    """Pick a file extension from the URL text (no content-type sniffing).

    Args:
        url: Image URL

    Returns:
        ``webp``, ``jpg`` or the default ``png``
    """
    for needle, extension in EXTENSION_RULES:
        if needle in url:
            return extension
    return DEFAULT_EXTENSION


def local_image_path(filename: str) -> str:
    """Public path under which a stored image is served."""
    return f"{IMAGE_URL_PREFIX}{filename}"


class ImageStore:
    """Fetches images over HTTP and writes them under a storage root.

    Files are named ``<uuid4>.<ext>`` directly under the root, with no
    sharding and no metadata sidecar.

    Attributes:
        client: Shared async HTTP client
        storage_path: Directory images are written to
    """

    def __init__(self, client: httpx.AsyncClient, storage_path: Union[str, Path]):
        self.client = client
        self.storage_path = Path(storage_path)

    async def fetch(self, url: str) -> str:
        """Download an image and store it.

        Args:
            url: Remote image URL

        Returns:
            The stored filename

        Raises:
            ImageDownloadError: If the download fails, the status is not a
                success, or the file cannot be written
        """
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as e:
            raise ImageDownloadError(f"failed to download image {url}: {e!r}") from e

        if not response.is_success:
            raise ImageDownloadError(
                f"image server returned status {response.status_code} for {url}"
            )

        filename = f"{uuid.uuid4()}.{guess_extension(url)}"
        path = self.storage_path / filename
        try:
            await asyncio.to_thread(path.write_bytes, response.content)
        except OSError as e:
            raise ImageDownloadError(f"failed to write {path}: {e}") from e

        logger.info(f"Saved image {url} as {filename} ({len(response.content)} bytes)")
        return filename

    def resolve(self, image_url: str) -> Path:
        """Map a served image path (``/images/<file>``) back to its file."""
        return self.storage_path / image_url.rsplit("/", 1)[-1]

    def build_zip(self, image_urls: Iterable[str]) -> bytes:
        """Pack the stored files behind ``image_urls`` into an uncompressed zip.

        Images that are not present in storage (for example remote URLs kept
        after a failed download) are skipped.
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_STORED) as archive:
            for image_url in image_urls:
                path = self.resolve(image_url)
                if not path.is_file():
                    logger.debug(f"Skipping missing image in export: {image_url}")
                    continue
                archive.write(path, arcname=path.name)
        return buffer.getvalue()

    async def export_zip(self, image_urls: Iterable[str]) -> bytes:
        """Async wrapper around :meth:`build_zip`."""
        return await asyncio.to_thread(self.build_zip, list(image_urls))
