from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from core.mindmap_service import MindMapService
from web.backend.routers.goals import get_service

router = APIRouter()


class FocusRequest(BaseModel):
    node_id: str


class EditRequest(BaseModel):
    goal_id: str
    title: str
    color: str = ""


def _with_changed(service: MindMapService, changed: bool) -> Dict[str, Any]:
    data = service.selection()
    data["changed"] = changed
    return data


@router.get("/")
def get_selection(service: MindMapService = Depends(get_service)):
    return service.selection()


@router.post("/focus")
def focus_node(req: FocusRequest, service: MindMapService = Depends(get_service)):
    """Habit leaves and unknown ids leave the selection untouched."""
    return _with_changed(service, service.focus(req.node_id))


@router.post("/tap-outside")
def tap_outside(service: MindMapService = Depends(get_service)):
    service.tap_outside()
    return service.selection()


@router.post("/toggle-edit")
def toggle_edit(service: MindMapService = Depends(get_service)):
    service.toggle_edit()
    return service.selection()


@router.post("/edit")
def complete_edit(req: EditRequest, service: MindMapService = Depends(get_service)):
    return _with_changed(service, service.complete_edit(req.goal_id, req.title, req.color))


@router.post("/toggle-enabled")
def toggle_focused_enabled(service: MindMapService = Depends(get_service)):
    return _with_changed(service, service.toggle_focused_enabled())


@router.post("/delete")
def delete_focused(service: MindMapService = Depends(get_service)):
    return _with_changed(service, service.delete_focused())


@router.get("/add-action/{goal_id}")
def add_action(goal_id: str, service: MindMapService = Depends(get_service)):
    action = service.add_action(goal_id)
    if action is None:
        raise HTTPException(status_code=404, detail=f"Goal {goal_id} not found")
    return {"goalId": goal_id, "action": action}
