"""HTTP surface for the meal-plan scheduler."""

from __future__ import annotations

import hmac
from typing import Any, Callable, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel, Field

from dtps_planner.application.api_services import PhaseApiService
from dtps_planner.application.exceptions import DataAccessError, NotFoundError
from dtps_planner.cli.status import DEFAULT_TIMEOUT_SECONDS, render_results, run_status_checks
from dtps_planner.config import get_env
from dtps_planner.domain.errors import Overlap, SchedulingError
from dtps_planner.infrastructure import log_utils

app = FastAPI(title="DTPS Meal Plan Scheduler API")


class CreatePhaseRequest(BaseModel):
    purchase_id: str
    duration_days: int = Field(..., ge=1)
    start_date: Optional[str] = Field(None, description="YYYY-MM-DD; defaults to the next free day")
    name: Optional[str] = None


class PauseRequest(BaseModel):
    days: int = Field(..., ge=1)


class ExtendRequest(BaseModel):
    new_start_date: str


class DatesRequest(BaseModel):
    dates: List[str] = Field(..., min_length=1)


class DuplicateRequest(BaseModel):
    start_date: Optional[str] = None


# Helper to validate API key from header OR query string
def validate_api_key(request: Request, x_api_key: str | None) -> None:
    key = x_api_key or request.query_params.get("api_key")
    expected = get_env("PLANNER_API_KEY")
    if not expected or not key or not hmac.compare_digest(str(key), str(expected)):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


def get_phase_service() -> PhaseApiService:
    from dtps_planner.infrastructure.di_container import get_container

    return get_container().resolve(PhaseApiService)


def _handle(call: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    """Run a service call and translate planner errors into HTTP responses."""
    try:
        return call()
    except Overlap as exc:
        raise HTTPException(status_code=409, detail=exc.to_dict())
    except SchedulingError as exc:
        raise HTTPException(status_code=400, detail=exc.to_dict())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except DataAccessError as exc:
        log_utils.error(f"Request failed in persistence layer: {exc}")
        raise HTTPException(status_code=500, detail=str(exc))


# Root endpoint - useful for connector validation
@app.get("/")
def root_get():
    return {"status": "ok", "message": "DTPS planner API root"}


@app.post("/phases", status_code=201)
def create_phase(
    body: CreatePhaseRequest,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    """Create a phase drawn from a purchase's remaining plan-days."""
    validate_api_key(request, x_api_key)
    return _handle(
        lambda: service.create(body.purchase_id, body.duration_days, body.start_date, body.name)
    )


@app.post("/phases/{phase_id}/pause")
def pause_phase(
    phase_id: str,
    body: PauseRequest,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.pause(phase_id, body.days))


@app.post("/phases/{phase_id}/resume")
def resume_phase(
    phase_id: str,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.resume(phase_id))


@app.post("/phases/{phase_id}/extend")
def extend_phase(
    phase_id: str,
    body: ExtendRequest,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    """Slide a phase to a new start date; the rest of the chain is re-dated around it."""
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.extend(phase_id, body.new_start_date))


@app.post("/phases/{phase_id}/freeze")
def freeze_phase(
    phase_id: str,
    body: DatesRequest,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.freeze(phase_id, body.dates))


@app.post("/phases/{phase_id}/unfreeze")
def unfreeze_phase(
    phase_id: str,
    body: DatesRequest,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.unfreeze(phase_id, body.dates))


@app.post("/phases/{phase_id}/duplicate", status_code=201)
def duplicate_phase(
    phase_id: str,
    request: Request,
    body: Optional[DuplicateRequest] = None,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    start_date = body.start_date if body is not None else None
    return _handle(lambda: service.duplicate(phase_id, start_date))


@app.delete("/phases/{phase_id}")
def delete_phase(
    phase_id: str,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.delete(phase_id))


@app.get("/phases/{phase_id}/freeze")
def phase_freeze_info(
    phase_id: str,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    """Freeze quota and frozen days of a phase."""
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.freeze_info(phase_id))


@app.get("/clients/{client_id}/phases")
def client_phases(
    client_id: str,
    request: Request,
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.client_phases(client_id))


@app.get("/clients/{client_id}/view")
def client_view(
    client_id: str,
    request: Request,
    today: Optional[str] = Query(None, description="Reference date in YYYY-MM-DD"),
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    """Which phase the client is on: running, upcoming, completed or none."""
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.view(client_id, today))


@app.get("/clients/{client_id}/allowance")
def client_allowance(
    client_id: str,
    request: Request,
    days: int = Query(1, ge=1, description="Length of the phase to check."),
    x_api_key: str = Header(None),
    service: PhaseApiService = Depends(get_phase_service),
):
    validate_api_key(request, x_api_key)
    return _handle(lambda: service.allowance(client_id, days))


@app.get("/status")
def status(
    request: Request,
    x_api_key: str = Header(None),
    timeout: float = Query(
        DEFAULT_TIMEOUT_SECONDS,
        ge=0.1,
        description="Per dependency timeout in seconds.",
    ),
):
    """Expose the CLI health check results via the API."""

    validate_api_key(request, x_api_key)

    results = run_status_checks(timeout=timeout)
    checks = [
        {"name": result.name, "ok": result.ok, "detail": result.detail}
        for result in results
    ]
    overall_ok = all(result["ok"] for result in checks)

    return {
        "ok": overall_ok,
        "checks": checks,
        "summary": render_results(results),
    }
