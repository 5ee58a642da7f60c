"""Web dashboard and JSON API over a single orchestrator."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import HTMLResponse, JSONResponse, Response
from starlette.routing import Route

from nexbuilder.core import graph
from nexbuilder.core.activity import entries_for_task
from nexbuilder.core.artifacts import archive_name, bundle_preview, export_zip, get_file
from nexbuilder.core.orchestrator import Orchestrator
from nexbuilder.core.serialization import (
    entry_to_dict,
    file_to_dict,
    project_to_dict,
    task_to_dict,
)
from nexbuilder.errors import (
    CollaboratorError,
    ConfigurationError,
    CycleError,
    EmptyDecompositionError,
    EmptyPlanError,
    InvalidDependencyError,
    NexBuilderError,
    NoProjectError,
    OperationInProgressError,
    ParseError,
    StaleExecutionError,
    TaskNotEditableError,
    TaskNotFoundError,
    TaskNotReadyError,
)
from nexbuilder.runtime import open_orchestrator
from nexbuilder.web.dashboard import get_dashboard_html

logger = logging.getLogger(__name__)

# Injected into the preview page; reports each distinct uncaught error once.
ERROR_HOOK = """(function () {
  var seen = {};
  function report(message, stack) {
    message = String(message || 'Unknown error');
    if (seen[message]) return;
    seen[message] = true;
    fetch('/api/runtime-errors', {
      method: 'POST',
      headers: {'Content-Type': 'application/json'},
      body: JSON.stringify({message: message, stack: stack || null})
    }).catch(function () {});
  }
  window.addEventListener('error', function (e) {
    report(e.message, e.error && e.error.stack);
  });
  window.addEventListener('unhandledrejection', function (e) {
    var r = e.reason;
    report(r && r.message ? r.message : r, r && r.stack);
  });
})();"""

ERROR_STATUS = [
    ((NoProjectError, TaskNotFoundError), 404),
    ((OperationInProgressError, StaleExecutionError, TaskNotReadyError, TaskNotEditableError), 409),
    ((CycleError, InvalidDependencyError, EmptyPlanError, EmptyDecompositionError, ParseError), 422),
    ((CollaboratorError,), 502),
    ((ConfigurationError,), 503),
]


def _orch(request: Request) -> Orchestrator:
    return request.app.state.orchestrator


async def _json_body(request: Request) -> dict:
    body = await request.body()
    if not body:
        return {}
    data = await request.json()
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


# ── Handlers ──────────────────────────────────────────────────────────────────


async def index(request: Request):
    return HTMLResponse(get_dashboard_html())


async def api_get_project(request: Request):
    return JSONResponse(project_to_dict(_orch(request).require_project()))


async def api_create_project(request: Request):
    data = await _json_body(request)
    project = await run_in_threadpool(_orch(request).create_project, str(data.get("prompt", "")))
    return JSONResponse(project_to_dict(project), status_code=201)


async def api_reset_project(request: Request):
    await run_in_threadpool(_orch(request).reset)
    return JSONResponse({"ok": True})


async def api_summary(request: Request):
    orch = _orch(request)
    summary = graph.summarize(orch.require_project())
    summary["busy"] = orch.busy
    return JSONResponse(summary)


async def api_list_tasks(request: Request):
    project = _orch(request).require_project()
    status = request.query_params.get("status")
    tasks = [t for t in project.tasks if status is None or t.status.value == status]
    return JSONResponse([task_to_dict(t) for t in tasks])


async def api_ready_tasks(request: Request):
    return JSONResponse([task_to_dict(t) for t in _orch(request).ready_tasks()])


async def api_get_task(request: Request):
    orch = _orch(request)
    project = orch.require_project()
    task = graph.require_task(project, request.path_params["task_id"])
    data = task_to_dict(task)
    data["ready"] = graph.is_ready(task, {t.id: t for t in project.tasks})
    data["activity"] = [entry_to_dict(e) for e in entries_for_task(project, task.id)]
    return JSONResponse(data)


async def api_edit_task(request: Request):
    orch = _orch(request)
    task_id = request.path_params["task_id"]
    data = await _json_body(request)
    current = orch.get_task(task_id)
    task = await run_in_threadpool(
        orch.edit_task,
        task_id,
        data.get("title", current.title),
        data.get("description", current.description),
    )
    return JSONResponse(task_to_dict(task))


async def api_execute_task(request: Request):
    retry = request.query_params.get("retry") in ("1", "true", "yes")
    task = await run_in_threadpool(
        _orch(request).execute_task, request.path_params["task_id"], retry
    )
    return JSONResponse(task_to_dict(task))


async def api_split_task(request: Request):
    chain = await run_in_threadpool(_orch(request).split_task, request.path_params["task_id"])
    return JSONResponse([task_to_dict(t) for t in chain])


async def api_add_dependency(request: Request):
    data = await _json_body(request)
    depends_on = data.get("dependsOn")
    if not depends_on:
        raise ValueError("'dependsOn' is required")
    task = await run_in_threadpool(
        _orch(request).add_dependency, request.path_params["task_id"], str(depends_on)
    )
    return JSONResponse(task_to_dict(task))


async def api_remove_dependency(request: Request):
    task = await run_in_threadpool(
        _orch(request).remove_dependency,
        request.path_params["task_id"],
        request.path_params["depends_on_id"],
    )
    return JSONResponse(task_to_dict(task))


async def api_run_all(request: Request):
    data = await _json_body(request)
    limit = data.get("limit")
    finished = await run_in_threadpool(
        _orch(request).run_ready, int(limit) if limit is not None else None
    )
    return JSONResponse([task_to_dict(t) for t in finished])


async def api_refine(request: Request):
    data = await _json_body(request)
    description = await run_in_threadpool(
        _orch(request).refine_description,
        str(data.get("title", "")),
        str(data.get("description", "")),
    )
    return JSONResponse({"description": description})


async def api_list_packages(request: Request):
    return JSONResponse(list(_orch(request).require_project().packages))


async def api_add_package(request: Request):
    data = await _json_body(request)
    project = await run_in_threadpool(_orch(request).add_package, str(data.get("name", "")))
    return JSONResponse(list(project.packages), status_code=201)


async def api_remove_package(request: Request):
    project = await run_in_threadpool(_orch(request).remove_package, request.path_params["name"])
    return JSONResponse(list(project.packages))


async def api_list_files(request: Request):
    project = _orch(request).require_project()
    return JSONResponse(
        [{"path": f.path, "language": f.language, "size": len(f.content)} for f in project.files]
    )


async def api_get_file(request: Request):
    path = request.path_params["path"]
    f = get_file(_orch(request).require_project(), path)
    if f is None:
        return JSONResponse({"error": f"File not found: {path}"}, status_code=404)
    return JSONResponse(file_to_dict(f))


async def api_activity(request: Request):
    project = _orch(request).require_project()
    task_id = request.query_params.get("task")
    limit = int(request.query_params.get("limit", 50))
    entries = entries_for_task(project, task_id) if task_id else list(project.activity_log)
    return JSONResponse([entry_to_dict(e) for e in entries[-limit:]])


async def api_runtime_error(request: Request):
    data = await _json_body(request)
    message = str(data.get("message") or "").strip()
    if not message:
        raise ValueError("'message' is required")
    task = await run_in_threadpool(_orch(request).report_runtime_error, message, data.get("stack"))
    return JSONResponse(task_to_dict(task), status_code=201)


async def api_export_zip(request: Request):
    project = _orch(request).require_project()
    return Response(
        export_zip(project),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive_name(project)}"'},
    )


async def preview(request: Request):
    project = _orch(request).project
    files = project.files if project else ()
    return HTMLResponse(bundle_preview(files, head_script=ERROR_HOOK))


# ── Errors ────────────────────────────────────────────────────────────────────


async def domain_error(request: Request, exc: Exception):
    status_code = 400
    for classes, code in ERROR_STATUS:
        if isinstance(exc, classes):
            status_code = code
            break
    if status_code >= 500:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        {"error": str(exc), "type": type(exc).__name__}, status_code=status_code
    )


# ── App ───────────────────────────────────────────────────────────────────────


def create_app(orchestrator: Orchestrator | None = None) -> Starlette:
    @asynccontextmanager
    async def lifespan(app: Starlette):
        if app.state.orchestrator is not None:
            yield
            return
        with open_orchestrator() as orch:
            app.state.orchestrator = orch
            yield

    routes = [
        Route("/", index),
        Route("/preview", preview),
        Route("/api/project", api_get_project, methods=["GET"]),
        Route("/api/project", api_create_project, methods=["POST"]),
        Route("/api/project", api_reset_project, methods=["DELETE"]),
        Route("/api/summary", api_summary),
        Route("/api/tasks", api_list_tasks),
        Route("/api/tasks/ready", api_ready_tasks),
        Route("/api/tasks/{task_id}", api_get_task, methods=["GET"]),
        Route("/api/tasks/{task_id}", api_edit_task, methods=["PATCH"]),
        Route("/api/tasks/{task_id}/execute", api_execute_task, methods=["POST"]),
        Route("/api/tasks/{task_id}/split", api_split_task, methods=["POST"]),
        Route("/api/tasks/{task_id}/dependencies", api_add_dependency, methods=["POST"]),
        Route(
            "/api/tasks/{task_id}/dependencies/{depends_on_id}",
            api_remove_dependency,
            methods=["DELETE"],
        ),
        Route("/api/run-all", api_run_all, methods=["POST"]),
        Route("/api/refine", api_refine, methods=["POST"]),
        Route("/api/packages", api_list_packages, methods=["GET"]),
        Route("/api/packages", api_add_package, methods=["POST"]),
        Route("/api/packages/{name}", api_remove_package, methods=["DELETE"]),
        Route("/api/files", api_list_files),
        Route("/api/files/{path:path}", api_get_file),
        Route("/api/activity", api_activity),
        Route("/api/runtime-errors", api_runtime_error, methods=["POST"]),
        Route("/api/export.zip", api_export_zip),
    ]
    app = Starlette(
        routes=routes,
        exception_handlers={NexBuilderError: domain_error, ValueError: domain_error},
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    return app


def run_server(host: str = "127.0.0.1", port: int = 8788):
    app = create_app()
    uvicorn.run(app, host=host, port=port)
