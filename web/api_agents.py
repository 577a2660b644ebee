"""
Agent team REST endpoints: persona listing and the Server-Sent Events run stream.
"""

import json
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from agent import WorkflowError, describe_personas
import web.state as _state

logger = logging.getLogger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _frame(data: dict) -> str:
    return f"data: {json.dumps(data)}\n\n"


@router.get("/api/agents")
async def list_agents():
    """Persona table: role, name, title, description, backing model."""
    return JSONResponse({"agents": describe_personas()})


@router.post("/api/agents")
async def run_agents(request: Request):
    """Run the team on a task and stream every workflow event as an SSE frame."""
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Invalid request body"}, status_code=400)

    task = body.get("task") if isinstance(body, dict) else None
    if not isinstance(task, str) or not task.strip():
        return JSONResponse({"error": "Task is required"}, status_code=400)

    orchestrator = _state.build_orchestrator()

    async def _events():
        try:
            async for event in orchestrator.stream(task.strip()):
                yield _frame(event.to_dict())
        except Exception as e:
            logger.exception("Agent stream failed")
            yield _frame(WorkflowError(error=str(e) or "Unknown error occurred").to_dict())
        finally:
            _state.release_run_directory(orchestrator.backend.working_directory)

    return StreamingResponse(_events(), media_type="text/event-stream", headers=SSE_HEADERS)
