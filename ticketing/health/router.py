from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ticketing.utils.rate_limit import rate_limit_health_info
from . import service as health_service

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_root(request: Request):
    return {
        "ok": True,
        "context": getattr(request.app.state, "context", None) is not None,
        "rate_limit": rate_limit_health_info(request),
    }


@router.get("/supabase")
def health_supabase(request: Request):
    ctx = getattr(request.app.state, "context", None)
    return JSONResponse(health_service.health_supabase_info(getattr(ctx, "db", None)))
