"""
Lockout Host API

Example FastAPI composition root for the AnomalyEngine:
- POST /signals/login   → decision (423 when locked)
- POST /signals/action  → decision (423 when locked)
- GET  /admin/users/{user_id}/anomaly-status
- POST /admin/users/{user_id}/reset-risk
- POST /admin/users/{user_id}/unlock
- GET  /admin/anomaly-metrics

Admin endpoints require the X-Admin-Token header to match ADMIN_API_TOKEN.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
import hmac
import logging
import os
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request, status
from fastapi.responses import JSONResponse

from lockout import AnomalyConfig, AnomalyEngine, LoggingEventSink
from lockout.schemas import (
    AdminOverride,
    EngineMetrics,
    LoginAttempt,
    ProfileSnapshot,
    RiskDecision,
    UserAction,
)
from profile_store import (
    AuditLogger,
    InMemoryProfileStore,
    ProfileStore,
    ProfileStoreError,
    RedisProfileStore,
    close_redis_client,
)


load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    engine: Optional[AnomalyEngine] = None


state = AppState()


def build_store() -> ProfileStore:
    """Pick the profile backend from RISK_STORE (memory | redis)."""
    backend = os.getenv("RISK_STORE", "memory").lower()
    if backend == "redis":
        return RedisProfileStore()
    return InMemoryProfileStore()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting Lockout API...")
    state.engine = AnomalyEngine(
        config=AnomalyConfig.from_env(),
        store=build_store(),
        event_sinks=[LoggingEventSink(), AuditLogger()],
    )
    state.engine.start()
    logger.info("Lockout engine ready")

    yield

    # Shutdown
    logger.info("Shutting down Lockout API...")
    state.engine.stop()
    if isinstance(state.engine.store, RedisProfileStore):
        close_redis_client()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="Lockout",
    description="Adaptive risk scoring and account lockout",
    version=VERSION,
    lifespan=lifespan,
)


def get_engine() -> AnomalyEngine:
    if state.engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Engine not initialized"
        )
    return state.engine


def require_admin(
    x_admin_token: Optional[str] = Header(None),
    x_admin_id: Optional[str] = Header(None),
) -> str:
    """Authorize admin calls and return the acting admin's id."""
    expected = os.getenv("ADMIN_API_TOKEN")
    if not expected or not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin authorization required"
        )
    return x_admin_id or "unknown-admin"


def decision_response(decision: RiskDecision) -> JSONResponse:
    """Translate a locked decision into HTTP 423."""
    if decision.is_locked:
        return JSONResponse(
            status_code=status.HTTP_423_LOCKED,
            content={
                "success": False,
                "error": {
                    "code": "ACCOUNT_LOCKED",
                    "message": decision.reason,
                },
                "data": decision.model_dump(),
            },
        )
    return JSONResponse(
        status_code=status.HTTP_200_OK,
        content={"success": True, "data": decision.model_dump()},
    )


@app.exception_handler(ProfileStoreError)
async def store_unavailable_handler(request: Request, exc: ProfileStoreError):
    """Storage outages are 503s, never 404 USER_NOT_FOUND."""
    logger.error(f"Profile store unavailable for {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "success": False,
            "error": {
                "code": "STORE_UNAVAILABLE",
                "message": "Risk profile storage is unavailable",
            },
        },
    )


# =============================================================================
# Health Check
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


# =============================================================================
# Signal Endpoints
# =============================================================================

@app.post("/signals/login")
def record_login(payload: LoginAttempt, engine: AnomalyEngine = Depends(get_engine)):
    """Record the outcome of a credential check."""
    decision = engine.record_login_attempt(
        payload.user_id,
        payload.identity_label,
        payload.source_ip,
        payload.success,
    )
    if decision.is_locked:
        logger.warning(
            f"Login blocked - account locked: user={payload.user_id} "
            f"ip={payload.source_ip} score={decision.risk_score:.2f}"
        )
    return decision_response(decision)


@app.post("/signals/action")
def record_action(payload: UserAction, engine: AnomalyEngine = Depends(get_engine)):
    """Record an authenticated request."""
    decision = engine.record_user_action(payload.user_id, payload.identity_label)
    if decision.is_locked:
        logger.warning(
            f"User action blocked - account locked: user={payload.user_id} "
            f"score={decision.risk_score:.2f}"
        )
    return decision_response(decision)


# =============================================================================
# Admin Endpoints
# =============================================================================

@app.get("/admin/users/{user_id}/anomaly-status", response_model=ProfileSnapshot)
def anomaly_status(
    user_id: str,
    engine: AnomalyEngine = Depends(get_engine),
    admin_id: str = Depends(require_admin),
):
    snapshot = engine.get_status(user_id)
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")
    return snapshot


@app.post("/admin/users/{user_id}/reset-risk")
def reset_risk(
    user_id: str,
    body: Optional[AdminOverride] = None,
    engine: AnomalyEngine = Depends(get_engine),
    admin_id: str = Depends(require_admin),
):
    reason = (body.reason if body and body.reason else None) or "Admin reset"
    logger.info(f"Admin reset user risk score: user={user_id} admin={admin_id} reason={reason}")

    if not engine.reset_risk_score(user_id, f"{reason} (by {admin_id})"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")
    return {"success": True, "message": f"Risk score reset for user {user_id}"}


@app.post("/admin/users/{user_id}/unlock")
def unlock(
    user_id: str,
    body: Optional[AdminOverride] = None,
    engine: AnomalyEngine = Depends(get_engine),
    admin_id: str = Depends(require_admin),
):
    reason = (body.reason if body and body.reason else None) or "Admin unlock"
    logger.info(f"Admin unlocked account: user={user_id} admin={admin_id} reason={reason}")

    if not engine.unlock_account(user_id, f"{reason} (by {admin_id})"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="USER_NOT_FOUND")
    return {"success": True, "message": f"Account unlocked for user {user_id}"}


@app.get("/admin/anomaly-metrics")
def anomaly_metrics(
    engine: AnomalyEngine = Depends(get_engine),
    admin_id: str = Depends(require_admin),
):
    metrics: EngineMetrics = engine.get_metrics()
    config = engine.get_config()
    return {
        "success": True,
        "data": {
            **metrics.model_dump(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "config": {
                "risk_threshold": config.risk_threshold,
                "warning_threshold": config.warning_threshold,
                "lock_duration_seconds": config.lock_duration_seconds,
            },
        },
    }


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
