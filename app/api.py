"""JSON API exposing the caller's job applications."""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, Response, status

from .database import Database
from .identity import Resolution
from .insights import ApplicationInsights
from .results import ErrorKind, Failure, Result
from .store import ApplicationStore

_STATUS_BY_KIND = {
    ErrorKind.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STORAGE: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Stands in for a failed result that carries no reason.
_UNEXPECTED_FAILURE = Failure(ErrorKind.STORAGE, "Unexpected error. Please try again.")


def failure_to_payload(failure: Failure) -> Dict[str, Any]:
    if failure.kind is ErrorKind.UNAUTHENTICATED:
        return {"error": "Unauthorized"}
    if failure.kind is ErrorKind.VALIDATION:
        payload: Dict[str, Any] = {"error": failure.message}
        if failure.fields:
            payload["details"] = dict(failure.fields)
        return payload
    return {"error": failure.message}


def render_result(
    response: Response,
    result: Result[Any],
    render: Callable[[Any], Dict[str, Any]],
    *,
    success_status: int = status.HTTP_200_OK,
) -> Dict[str, Any]:
    if result.success:
        response.status_code = success_status
        return render(result.data)
    failure = result.error
    if failure is None:
        failure = _UNEXPECTED_FAILURE
    response.status_code = _STATUS_BY_KIND[failure.kind]
    return failure_to_payload(failure)


async def _read_json_object(request: Request) -> tuple[Optional[Dict[str, Any]], Optional[str]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, "Invalid JSON"
    if not isinstance(body, dict):
        return None, "Request body must be a JSON object"
    return body, None


def register_api_routes(
    app: FastAPI,
    database: Database,
    *,
    resolve_identity: Callable[..., Resolution],
) -> None:
    """Expose the application endpoints on ``app`` under ``/api``."""

    router = APIRouter(prefix="/api")

    def get_store(resolution: Resolution = Depends(resolve_identity)) -> ApplicationStore:
        return ApplicationStore(database, resolution.identity)

    def unauthorized(response: Response) -> Dict[str, Any]:
        return render_result(response, Result.unauthenticated(), lambda _: {})

    @router.get("/applications")
    async def list_applications(response: Response, store: ApplicationStore = Depends(get_store)):
        result = store.list()
        return render_result(
            response,
            result,
            lambda applications: {"data": [application.to_dict() for application in applications]},
        )

    @router.post("/applications")
    async def create_application(
        request: Request,
        response: Response,
        store: ApplicationStore = Depends(get_store),
    ):
        if store.identity is None:
            return unauthorized(response)

        body, error = await _read_json_object(request)
        if body is None:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return {"error": error}

        result = store.create(body)
        return render_result(
            response,
            result,
            lambda application: {"data": application.to_dict()},
            success_status=status.HTTP_201_CREATED,
        )

    @router.get("/applications/{application_id}")
    async def read_application(
        application_id: str,
        response: Response,
        store: ApplicationStore = Depends(get_store),
    ):
        result = store.get_by_id(application_id)
        return render_result(response, result, lambda application: {"data": application.to_dict()})

    @router.patch("/applications/{application_id}")
    async def update_application(
        application_id: str,
        request: Request,
        response: Response,
        store: ApplicationStore = Depends(get_store),
    ):
        if store.identity is None:
            return unauthorized(response)

        body, error = await _read_json_object(request)
        if body is None:
            response.status_code = status.HTTP_400_BAD_REQUEST
            return {"error": error}

        result = store.update(application_id, body)
        return render_result(response, result, lambda application: {"data": application.to_dict()})

    @router.delete("/applications/{application_id}")
    async def delete_application(
        application_id: str,
        response: Response,
        store: ApplicationStore = Depends(get_store),
    ):
        result = store.delete(application_id)
        return render_result(
            response,
            result,
            lambda deleted: {
                "success": True,
                "message": "Application deleted successfully",
                "data": deleted,
            },
        )

    @router.get("/insights")
    async def read_insights(response: Response, store: ApplicationStore = Depends(get_store)):
        result = ApplicationInsights(store).summary()
        return render_result(response, result, lambda summary: {"data": summary})

    app.include_router(router)


__all__ = ["failure_to_payload", "register_api_routes", "render_result"]
