"""Project and sprint endpoints.

Both kinds share one set of routes; ``build_router`` binds them to a kind.
Domain errors propagate to the handlers registered in ``api.main``.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ... import models, schemas
from ...orchestrator import ContainerOrchestrator
from ...permissions import Actor
from ..dependencies import get_current_actor, get_orchestrator

logger = logging.getLogger("delivery-core.containers")


def build_router(kind: models.ContainerKind) -> APIRouter:
    """Create the router for one container kind."""
    router = APIRouter(tags=[f"{kind.value}s"])
    label = models.KIND_ITEM_LABEL[kind].lower()

    @router.post("/", response_model=schemas.ContainerResponse, status_code=201)
    def create_container(
        data: schemas.ContainerCreate,
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """
        Create a container. Department heads only.

        - **members**: at least one, exactly one with role `lead`
        - **endDate**: required for sprints (`targetEndDate` is accepted for projects)
        - **initialWorkItems**: optional; a sprint without any gets a kickoff action
        """
        return orchestrator.create_container(kind, data, actor)

    @router.get("/", response_model=schemas.ContainerListResponse)
    def list_containers(
        department: Optional[str] = Query(None, description="Filter by department"),
        status: Optional[models.ContainerStatus] = Query(None, description="Filter by status"),
        health: Optional[models.Health] = Query(None, description="Filter by current health"),
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """List containers with their health evaluated at request time."""
        return orchestrator.list_containers(kind, department, status, health)

    @router.get("/mine", response_model=schemas.MyContainerListResponse)
    def list_my_containers(
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """Active containers where the caller is a member."""
        return orchestrator.list_my_containers(kind, actor)

    @router.get("/{container_id}", response_model=schemas.ContainerResponse)
    def get_container(
        container_id: str,
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """Get a container by UUID or number (e.g. `PRJ-0001`)."""
        return orchestrator.get_container(kind, container_id)

    @router.patch("/{container_id}", response_model=schemas.ContainerResponse)
    def apply_container_action(
        container_id: str,
        action: schemas.ContainerAction,
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """Apply a container action (`add-member`, `complete`, `add-chat-message`, ...)."""
        return orchestrator.apply_container_action(kind, container_id, action, actor)

    @router.post(
        "/{container_id}/work-items",
        response_model=schemas.ContainerResponse,
        status_code=201,
        summary=f"Create {label}",
    )
    def create_work_item(
        container_id: str,
        data: schemas.WorkItemCreate,
        expected_version: Optional[int] = Query(None, alias="expectedVersion"),
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        return orchestrator.create_work_item(kind, container_id, data, actor, expected_version)

    @router.patch(
        "/{container_id}/work-items/{work_item_id}",
        response_model=schemas.ContainerResponse,
        summary=f"Apply {label} action",
    )
    def apply_work_item_action(
        container_id: str,
        work_item_id: str,
        action: schemas.WorkItemAction,
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        return orchestrator.apply_work_item_action(kind, container_id, work_item_id, action, actor)

    @router.get(
        "/{container_id}/work-items/{work_item_id}/history",
        response_model=list[schemas.WorkItemHistoryResponse],
    )
    def get_work_item_history(
        container_id: str,
        work_item_id: str,
        limit: int = Query(50, ge=1, le=500, description="Maximum number of entries"),
        actor: Actor = Depends(get_current_actor),
        orchestrator: ContainerOrchestrator = Depends(get_orchestrator),
    ):
        """History entries for one work item, newest first."""
        return orchestrator.get_work_item_history(kind, container_id, work_item_id, limit=limit)

    return router


projects_router = build_router(models.ContainerKind.PROJECT)
sprints_router = build_router(models.ContainerKind.SPRINT)
