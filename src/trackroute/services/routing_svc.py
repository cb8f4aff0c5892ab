"""FastAPI routing decision service.

Exposes routing decisions, rule-by-rule explanations and configuration lint
over HTTP. The service never dispatches events: callers receive the tracker
ids and deliver events themselves. All endpoints except /health support
optional API key authentication when configured.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Security, status
from fastapi.security import APIKeyHeader
from pydantic import ValidationError

from trackroute.builder import RoutingBuilder
from trackroute.config import configure_logging, get_settings
from trackroute.engine import RoutingEngine, RoutingResult
from trackroute.explain import RuleDebugInfo
from trackroute.routing_config import RoutingConfiguration, load_configuration
from trackroute.schemas import ConsentState, EventDescriptor

from .schemas import (
    DebugResponse,
    ErrorResponse,
    HealthResponse,
    RouteRequest,
    RouteResponse,
    RuleDebugResponse,
    SkippedRuleResponse,
    ValidateResponse,
)

logger = logging.getLogger(__name__)

# Global engine (initialized in lifespan)
engine: Optional[RoutingEngine] = None

# API key security (optional based on config)
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def verify_api_key(api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
    """Verify API key if authentication is required.

    Returns the API key if valid, or None if auth is disabled.
    Raises HTTPException 401 if auth is required but key is invalid/missing.
    """
    settings = get_settings()

    if not settings.api.require_auth:
        return None

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-Key header.",
        )

    if api_key != settings.api.api_key:
        logger.warning("Invalid API key attempt")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key.",
        )

    return api_key


def load_service_configuration() -> RoutingConfiguration:
    """Configuration from TRACKROUTE_API_CONFIG_PATH, or a route-everything default."""
    settings = get_settings()
    if settings.api.config_path is not None:
        return load_configuration(settings.api.config_path)
    logger.info("No routing configuration path set; routing every event to all trackers")
    return RoutingBuilder.from_settings(settings).build()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the routing engine on startup."""
    global engine

    settings = get_settings()
    configure_logging(settings)

    logger.info("Initializing trackroute routing service...")
    configuration = load_service_configuration()
    engine = RoutingEngine.from_settings(configuration, settings)
    logger.info(f"Routing service ready with {configuration}")

    yield

    engine = None
    logger.info("Routing service stopped")


app = FastAPI(
    title="trackroute Routing Service",
    version="0.1.0",
    description="Analytics event routing decisions: rules, consent, sampling",
    lifespan=lifespan,
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        422: {"model": ErrorResponse, "description": "Validation Error"},
        500: {"model": ErrorResponse, "description": "Internal Server Error"},
    },
)


def _route_response(result: RoutingResult) -> RouteResponse:
    return RouteResponse(
        target_trackers=result.target_trackers,
        will_be_tracked=result.will_be_tracked,
        applied_rules=[rule.label for rule in result.applied_rules],
        skipped_rules=[
            SkippedRuleResponse(rule=s.rule.label, reason=s.reason) for s in result.skipped_rules
        ],
        warnings=result.warnings,
    )


def _rule_response(info: RuleDebugInfo) -> RuleDebugResponse:
    return RuleDebugResponse(**info.to_dict())


def _parse(request: RouteRequest):
    event = EventDescriptor(**request.event.model_dump())
    consent = ConsentState(**request.consent.model_dump()) if request.consent else None
    return event, consent


@app.get("/health", response_model=HealthResponse)
def health():
    """Health check endpoint (no auth required)."""
    return HealthResponse(status="healthy", service="routing")


@app.post("/route", response_model=RouteResponse)
def route(
    request: RouteRequest,
    api_key: Optional[str] = Depends(verify_api_key),
):
    """Decide which trackers should receive the event."""
    try:
        event, consent = _parse(request)
        result = engine.route_event(event, consent, request.available_trackers)
        return _route_response(result)

    except HTTPException:
        raise
    except ValidationError as e:
        logger.warning(f"Validation error in /route: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Validation error: {e}",
        )
    except Exception:
        logger.exception("Unexpected error in /route")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error routing event",
        )


@app.post("/debug", response_model=DebugResponse)
def debug(
    request: RouteRequest,
    api_key: Optional[str] = Depends(verify_api_key),
):
    """Explain how every configured rule treats the event.

    Uses preview routing, so live adaptive sampling budgets are not consumed.
    """
    try:
        event, consent = _parse(request)
        info = engine.debug_event(event, consent, request.available_trackers)
        return DebugResponse(
            total_rules=len(info.all_rules),
            matching_rules=[_rule_response(i) for i in info.matching_rules],
            non_matching_rules=[_rule_response(i) for i in info.non_matching_rules],
            result=_route_response(info.routing_result),
        )

    except HTTPException:
        raise
    except ValidationError as e:
        logger.warning(f"Validation error in /debug: {e}")
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Validation error: {e}",
        )
    except Exception:
        logger.exception("Unexpected error in /debug")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error explaining event",
        )


@app.get("/validate", response_model=ValidateResponse)
def validate(api_key: Optional[str] = Depends(verify_api_key)):
    """Lint the loaded routing configuration."""
    try:
        issues = engine.validate_configuration()
        return ValidateResponse(
            valid=not issues,
            rule_count=len(engine.configuration.rules),
            issues=issues,
        )

    except Exception:
        logger.exception("Unexpected error in /validate")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error validating configuration",
        )
