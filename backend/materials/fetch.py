"""Download stored course materials for one generation job."""

import asyncio
import logging
from dataclasses import dataclass

from config import settings
from errors import MaterialFetchError, StorageError
from storage import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class StoredMaterialFile:
    data: bytes
    mime_type: str | None
    file_name: str
    storage_path: str


def display_name(storage_path: str) -> str:
    """Last path segment, or "source" for a path ending in a slash."""
    return storage_path.rsplit("/", 1)[-1] or "source"


async def fetch_material_file(store: ObjectStore, storage_path: str) -> StoredMaterialFile:
    try:
        stored = await store.download(settings.storage_bucket, storage_path)
    except StorageError as e:
        raise MaterialFetchError(storage_path, e.message) from e
    return StoredMaterialFile(
        data=stored.data,
        mime_type=stored.content_type,
        file_name=display_name(storage_path),
        storage_path=storage_path,
    )


async def fetch_material_files(store: ObjectStore, paths: list[str]) -> list[StoredMaterialFile]:
    """Fetch every path concurrently, preserving input order.

    Raises:
        MaterialFetchError: If any single fetch fails.
    """
    if not paths:
        return []
    return list(await asyncio.gather(*(fetch_material_file(store, p) for p in paths)))


async def fetch_optional_material_files(
    store: ObjectStore, paths: list[str]
) -> list[StoredMaterialFile]:
    """Best-effort fetch for optional material such as sample exams.

    Failed paths are logged and skipped; when nothing could be fetched the
    job simply runs without that material.
    """
    if not paths:
        return []
    results = await asyncio.gather(
        *(fetch_material_file(store, p) for p in paths), return_exceptions=True
    )
    files: list[StoredMaterialFile] = []
    for path, result in zip(paths, results):
        if isinstance(result, MaterialFetchError):
            logger.warning("Skipping optional material %s: %s", path, result.message)
        elif isinstance(result, BaseException):
            raise result
        else:
            files.append(result)
    return files
