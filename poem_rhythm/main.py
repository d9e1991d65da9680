from __future__ import annotations

import logging
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from poem_rhythm.logging_utils import (
    configure_logging,
    current_request_id,
    elapsed_ms,
    log_event,
    new_request_id,
    request_context,
)
from poem_rhythm.models import (
    FitRequest,
    FitResponse,
    LineRequest,
    LineRhythm,
    StanzaRequest,
    StanzaRhythmResponse,
    StrongBeatsResponse,
    ValidateRequest,
    ValidationResult,
)
from poem_rhythm.services.line_rhythm import build_line_rhythm_from_request, build_stanza_rhythm
from poem_rhythm.services.measure_fitting import fit_to_measure
from poem_rhythm.services.meter import get_beats_per_measure, get_strong_beats, is_compound_meter
from poem_rhythm.services.rhythm_validation import calculate_total_duration, count_measures, validate_rhythm

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Poem Rhythm")


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or new_request_id()
    request.state.request_id = request_id
    with request_context(request_id=request_id, route=request.url.path):
        started = time.perf_counter()
        log_event(logger, "request_started", method=request.method)
        try:
            response = await call_next(request)
        except Exception:
            log_event(logger, "request_completed", status_code=500, duration_ms=elapsed_ms(started))
            raise
        log_event(logger, "request_completed", status_code=response.status_code, duration_ms=elapsed_ms(started))
        response.headers["X-Request-ID"] = request_id
        return response


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    # The middleware's request context has already unwound by the time this runs.
    request_id = getattr(request.state, "request_id", None) or current_request_id()
    logger.exception("unhandled_exception", extra={"event": "unhandled_exception", "request_id": request_id})
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Something went wrong while building the rhythm. Please try again.",
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id},
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Raw inputs are dropped: they may hold Infinity/NaN, which strict JSON can't encode.
    errors = [{key: value for key, value in err.items() if key != "input"} for err in exc.errors()]
    log_event(logger, "request_rejected", level=logging.WARNING, error_count=len(errors))
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})


def _handle_user_error(action: str, exc: ValueError) -> HTTPException:
    log_event(logger, "request_failed", level=logging.WARNING, action=action, reason=str(exc))
    return HTTPException(
        status_code=422,
        detail={
            "message": f"{action} failed. Please adjust inputs and try again.",
            "reason": str(exc),
            "request_id": current_request_id(),
        },
    )


@app.post("/api/rhythm/line", response_model=LineRhythm)
def line_rhythm_endpoint(payload: LineRequest):
    try:
        return build_line_rhythm_from_request(payload)
    except ValueError as exc:
        raise _handle_user_error("Line rhythm", exc) from exc


@app.post("/api/rhythm/stanza", response_model=StanzaRhythmResponse)
def stanza_rhythm_endpoint(payload: StanzaRequest):
    log_event(logger, "stanza_inputs_received", line_count=len(payload.lines))
    try:
        return build_stanza_rhythm(payload.lines)
    except ValueError as exc:
        raise _handle_user_error("Stanza rhythm", exc) from exc


@app.post("/api/rhythm/fit", response_model=FitResponse)
def fit_endpoint(payload: FitRequest):
    fitted = fit_to_measure(payload.durations, payload.beats_per_measure, payload.options)
    return FitResponse(
        durations=fitted,
        total_beats=calculate_total_duration(fitted),
        measure_count=count_measures(fitted, payload.beats_per_measure) if payload.beats_per_measure > 0 else None,
    )


@app.post("/api/rhythm/validate", response_model=ValidationResult)
def validate_endpoint(payload: ValidateRequest):
    result = validate_rhythm(payload.durations)
    if result.valid:
        log_event(logger, "validation_passed", entry_count=len(payload.durations))
    else:
        log_event(logger, "validation_failed", level=logging.WARNING, diagnostics=result.issues)
    return result


@app.get("/api/rhythm/strong-beats/{numerator}/{denominator}", response_model=StrongBeatsResponse)
def strong_beats_endpoint(numerator: int, denominator: int):
    time_signature = f"{numerator}/{denominator}"
    return StrongBeatsResponse(
        time_signature=time_signature,
        beats_per_measure=get_beats_per_measure(time_signature),
        strong_beats=get_strong_beats(time_signature),
        compound=is_compound_meter(time_signature),
    )
