"""
Cluster definition API routes.
"""

from typing import List
from fastapi import APIRouter, Depends, HTTPException, Path, status
from fastapi.responses import JSONResponse, PlainTextResponse

from ..exceptions import (
    ClusterNotFoundError,
    ClusterOperationError,
    ClusterValidationError,
    StorageBackendError
)
from ..models.cluster import ClusterDefinition
from ..registry.cluster_registry import ClusterRegistry, get_cluster_registry
from ..utils.logging import get_logger

logger = get_logger(__name__)

CLUSTER_PERSISTED_MESSAGE = "Cluster persisted SUCCESSFULLY"

router = APIRouter(prefix="/apis/cluster", tags=["Cluster Definitions"])


async def get_registry() -> ClusterRegistry:
    """Registry dependency; overridden in tests."""
    return await get_cluster_registry()


@router.post("", response_class=PlainTextResponse)
async def create_cluster(
    definition: ClusterDefinition,
    registry: ClusterRegistry = Depends(get_registry)
) -> str:
    """Persist a cluster definition and provision its hosts."""
    try:
        await registry.create_cluster(definition)
        return CLUSTER_PERSISTED_MESSAGE
    except ClusterOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )


@router.get("", response_model=List[str])
async def list_clusters(registry: ClusterRegistry = Depends(get_registry)) -> List[str]:
    """Names of all cluster definitions."""
    return await _list_names(registry)


@router.get("/clusters-list-for-management", response_model=List[str])
async def list_clusters_for_management(registry: ClusterRegistry = Depends(get_registry)) -> List[str]:
    return await _list_names(registry)


@router.get("/total-cluster-nodes-added", response_model=int)
async def total_cluster_nodes(registry: ClusterRegistry = Depends(get_registry)) -> int:
    """Total number of worker hosts over all clusters."""
    try:
        return await registry.count_total_hosts()
    except ClusterOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )


@router.get("/hadoop-type")
async def get_hadoop_type(registry: ClusterRegistry = Depends(get_registry)):
    return registry.get_default_platform_type().model_dump(by_alias=True)


@router.get("/{cluster_name}")
async def get_cluster(
    cluster_name: str = Path(..., description="Cluster name"),
    registry: ClusterRegistry = Depends(get_registry)
):
    """Return a definition, or a message saying there is none."""
    try:
        result = await registry.get_cluster(cluster_name)
    except ClusterValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )
    except StorageBackendError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )

    if isinstance(result, str):
        return PlainTextResponse(result)
    return JSONResponse(content=result.to_document())


@router.put("/{cluster_name}")
async def update_cluster(
    definition: ClusterDefinition,
    cluster_name: str = Path(..., description="Cluster name"),
    registry: ClusterRegistry = Depends(get_registry)
) -> bool:
    """Replace a definition and re-provision its hosts."""
    try:
        return await registry.update_cluster(cluster_name, definition)
    except ClusterValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )
    except ClusterNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=e.message
        )
    except ClusterOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )


@router.delete("/{cluster_name}")
async def delete_cluster(
    cluster_name: str = Path(..., description="Cluster name"),
    registry: ClusterRegistry = Depends(get_registry)
) -> bool:
    """Delete a definition; deleting an unknown cluster succeeds."""
    try:
        return await registry.delete_cluster(cluster_name)
    except ClusterValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=e.message
        )
    except ClusterOperationError as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=e.message
        )


async def _list_names(registry: ClusterRegistry) -> List[str]:
    try:
        return await registry.list_cluster_names()
    except StorageBackendError as e:
        logger.error(f"Failed to list clusters: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to list clusters: {e.message}"
        )
