from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter()


@router.get("/live", summary="Liveness Probe")
async def liveness():
    """
    Liveness probe to check if the application process is running.
    """
    return {"status": "alive"}


@router.get("/ready", summary="Readiness Probe")
async def readiness(request: Request):
    """
    Readiness probe.
    Checks:
    1. MongoDB connectivity (ping)
    2. Redis cache availability (optional - service can run without it)
    """
    components = {"database": "unknown", "cache": "unknown"}
    is_ready = True

    try:
        if await request.app.state.mongo.ping():
            components["database"] = "connected"
        else:
            components["database"] = "client_not_initialized"
            is_ready = False
    except Exception as e:
        components["database"] = f"error: {str(e)}"
        is_ready = False

    # Cache is optional; permission lookups fall through to GitHub without it
    try:
        cache_health = await request.app.state.cache.health_check()
        if cache_health.get("status") == "healthy":
            components["cache"] = "connected"
        else:
            components["cache"] = "unavailable (degraded mode)"
    except Exception as e:
        components["cache"] = f"unavailable: {str(e)}"

    if is_ready:
        return {"status": "ready", "components": components}

    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "components": components},
    )
