from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from core.exceptions import StateError
from core.mindmap_service import MindMapService

router = APIRouter()


class CommandRequest(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


class MeasuredHeightRequest(BaseModel):
    node_id: str
    height: float = Field(gt=0)


def get_service(request: Request) -> MindMapService:
    return request.app.state.service


def _goals_response(service: MindMapService, changed: Optional[bool] = None) -> Dict[str, Any]:
    data = {
        "goals": [g.to_dict() for g in service.list_goals()],
        "rootGoalIds": service.root_goal_ids(),
    }
    if changed is not None:
        data["changed"] = changed
    return data


@router.get("/")
def list_goals(service: MindMapService = Depends(get_service)):
    return _goals_response(service)


@router.post("/commands")
def dispatch_command(req: CommandRequest, service: MindMapService = Depends(get_service)):
    """
    Apply one tagged goal command.
    Rejected or unknown commands are not errors: the state is returned unchanged.
    """
    changed = service.dispatch({"type": req.type, "payload": req.payload})
    return _goals_response(service, changed=changed)


@router.get("/layout")
def get_layout(
    viewport_width: Optional[float] = None,
    service: MindMapService = Depends(get_service),
):
    if viewport_width is not None and viewport_width <= 0:
        raise HTTPException(status_code=400, detail="viewport_width must be positive")
    return service.get_layout(viewport_width).to_dict()


@router.post("/layout/measured")
def report_measured_height(req: MeasuredHeightRequest, service: MindMapService = Depends(get_service)):
    changed = service.report_measured_height(req.node_id, req.height)
    return {"changed": changed}


@router.get("/state")
def export_state(service: MindMapService = Depends(get_service)):
    return service.export_state()


@router.put("/state")
def import_state(payload: Any = Body(None), service: MindMapService = Depends(get_service)):
    try:
        service.load_state(payload)
    except StateError as e:
        raise HTTPException(status_code=400, detail=e.get_user_message())
    return _goals_response(service)
