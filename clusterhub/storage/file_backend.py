"""
File-based definition store using one JSON file per cluster.
"""

import asyncio
import json
import os
import uuid
import weakref
import aiofiles
from pathlib import Path
from typing import List, Optional, Dict, Any, Union
from pydantic import ValidationError as PydanticValidationError

from ..config import get_settings
from ..models.cluster import ClusterDefinition
from ..exceptions import StorageBackendError, ClusterNotFoundError
from ..utils.logging import get_logger
from .base import DefinitionStore

logger = get_logger(__name__)

TEMP_SUFFIX = ".tmp"


class FileDefinitionStore(DefinitionStore):
    """Stores each definition as ``<root>/<clusterName><extension>``."""

    def __init__(self, storage_dir: Union[str, Path] = "data/clusters", extension: str = ".json"):
        """Initialize file definition store.

        Args:
            storage_dir: Directory holding the definition files
            extension: Extension of definition files
        """
        self.storage_dir = Path(storage_dir)
        self.extension = extension

        # Per-name locks serialize writers of one name inside this process;
        # an entry lives only while some writer holds or awaits it
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    async def initialize(self) -> bool:
        """Create the storage directory if it does not exist."""
        try:
            self._ensure_storage_dir()
            logger.info(f"File definition store initialized at {self.storage_dir}")
            return True
        except OSError as e:
            logger.error(f"Failed to initialize file definition store: {e}")
            raise StorageBackendError(
                "Failed to initialize file definition store",
                backend_type="file",
                operation="initialize",
                cause=e
            )

    async def close(self) -> None:
        """Close the store and cleanup resources."""
        self._locks.clear()
        logger.info("File definition store closed")

    async def put(self, definition: ClusterDefinition) -> bool:
        """Atomically replace the definition file for ``definition.cluster_name``."""
        cluster_name = definition.cluster_name
        try:
            async with self._get_lock(cluster_name):
                self._ensure_storage_dir()
                await self._write_json_file(self._path_for(cluster_name), definition.to_document())

                logger.debug(f"Cluster {cluster_name} persisted successfully")
                return True

        except StorageBackendError:
            raise
        except Exception as e:
            logger.error(f"Failed to save cluster {cluster_name}: {e}")
            raise StorageBackendError(
                f"Failed to save cluster {cluster_name}",
                backend_type="file",
                operation="put",
                details={"cluster_name": cluster_name},
                cause=e
            )

    async def get(self, cluster_name: str) -> ClusterDefinition:
        """Load a definition by name."""
        try:
            self._ensure_storage_dir()
            cluster_file = self._path_for(cluster_name)

            if not cluster_file.exists():
                raise ClusterNotFoundError(cluster_name)

            document = await self._read_json_file(cluster_file)
            definition = ClusterDefinition.model_validate(document)

            logger.debug(f"Loaded cluster definition: {cluster_name}")
            return definition

        except ClusterNotFoundError:
            raise
        except FileNotFoundError:
            # Removed between the existence check and the read
            raise ClusterNotFoundError(cluster_name)
        except (OSError, ValueError, PydanticValidationError) as e:
            logger.error(f"Failed to load cluster {cluster_name}: {e}")
            raise StorageBackendError(
                f"Failed to load cluster {cluster_name}",
                backend_type="file",
                operation="get",
                details={"cluster_name": cluster_name},
                cause=e
            )

    async def delete(self, cluster_name: str) -> bool:
        """Delete a definition file; absent files are not an error."""
        try:
            async with self._get_lock(cluster_name):
                self._ensure_storage_dir()
                cluster_file = self._path_for(cluster_name)
                try:
                    cluster_file.unlink()
                except FileNotFoundError:
                    logger.debug(f"Cluster {cluster_name} has no definition file, nothing to delete")
                    return False

                logger.info(f"Deleted cluster definition: {cluster_name}")
                return True

        except OSError as e:
            logger.error(f"Failed to delete cluster {cluster_name}: {e}")
            raise StorageBackendError(
                f"Failed to delete cluster {cluster_name}",
                backend_type="file",
                operation="delete",
                details={"cluster_name": cluster_name},
                cause=e
            )

    async def list_names(self) -> List[str]:
        """Scan the storage directory for definition files."""
        try:
            self._ensure_storage_dir()
            with os.scandir(self.storage_dir) as entries:
                names = [
                    entry.name[:-len(self.extension)]
                    for entry in entries
                    if entry.is_file() and entry.name.endswith(self.extension)
                    and not entry.name.startswith(".")
                ]
            logger.debug(f"Listed {len(names)} cluster definitions")
            return names

        except OSError as e:
            logger.error(f"Failed to list clusters: {e}")
            raise StorageBackendError(
                "Failed to list clusters",
                backend_type="file",
                operation="list_names",
                cause=e
            )

    async def exists(self, cluster_name: str) -> bool:
        """Check if a definition file exists."""
        return self._path_for(cluster_name).exists()

    async def health_check(self) -> Dict[str, Any]:
        """Report whether the storage directory is usable."""
        try:
            self._ensure_storage_dir()
            writable = os.access(self.storage_dir, os.W_OK)
            return {
                "status": "healthy" if writable else "unhealthy",
                "backend_type": "file",
                "storage_dir": str(self.storage_dir),
                "writable": writable,
                "cluster_count": len(await self.list_names())
            }
        except (OSError, StorageBackendError) as e:
            logger.error(f"Health check failed: {e}")
            return {
                "status": "unhealthy",
                "backend_type": "file",
                "storage_dir": str(self.storage_dir),
                "error": str(e)
            }

    # Private helper methods

    def _ensure_storage_dir(self) -> None:
        self.storage_dir.mkdir(parents=True, exist_ok=True)

    def _path_for(self, cluster_name: str) -> Path:
        path = self.storage_dir / f"{cluster_name}{self.extension}"
        if path.resolve().parent != self.storage_dir.resolve():
            raise StorageBackendError(
                f"Refusing definition path outside {self.storage_dir} for cluster {cluster_name!r}",
                backend_type="file",
                operation="resolve_path",
                details={"cluster_name": cluster_name}
            )
        return path

    def _get_lock(self, cluster_name: str) -> asyncio.Lock:
        """Get or create lock for a cluster name."""
        lock = self._locks.get(cluster_name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[cluster_name] = lock
        return lock

    async def _read_json_file(self, file_path: Path) -> Dict[str, Any]:
        """Read JSON data from file."""
        async with aiofiles.open(file_path, 'r') as f:
            content = await f.read()
            return json.loads(content)

    async def _write_json_file(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Write JSON to a hidden temp file, then rename it over the target."""
        temp_path = file_path.with_name(f".{file_path.name}.{uuid.uuid4().hex[:8]}{TEMP_SUFFIX}")
        try:
            async with aiofiles.open(temp_path, 'w') as f:
                await f.write(json.dumps(data, indent=2, default=str))
                await f.flush()
            os.replace(temp_path, file_path)
        except BaseException:
            if temp_path.exists():
                temp_path.unlink()
            raise


def create_file_store(storage_dir: Optional[Union[str, Path]] = None,
                      extension: Optional[str] = None) -> FileDefinitionStore:
    """Build a file store from settings, with optional overrides."""
    settings = get_settings()
    return FileDefinitionStore(
        storage_dir=storage_dir or settings.storage.clusters_path(),
        extension=extension or settings.storage.file_extension
    )
