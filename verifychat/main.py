from fastapi import FastAPI
from fastapi import Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from verifychat.api.routes import router
from verifychat.api.admin_routes import router as admin_router
from verifychat.errors import SessionBusy
from verifychat.observability.logging import log
from verifychat.settings import settings

app = FastAPI(title="VerifyChat API")

# Origins come from env; "*" only suits local development.
origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}


@app.exception_handler(SessionBusy)
async def session_busy_handler(request: Request, exc: SessionBusy):
    # Another turn of this session is still running; the client may resend.
    return JSONResponse(
        status_code=429,
        content={"status": "busy", "detail": "Previous message is still being processed."},
        headers={"Retry-After": "1"},
    )


@app.exception_handler(Exception)
async def universal_exception_handler(request: Request, exc: Exception):
    # Storage or bridge outages surface as a 503 the chat client can retry.
    log("request_failed", path=request.url.path, errorType=type(exc).__name__, error=str(exc)[:300])
    return JSONResponse(
        status_code=503,
        content={"status": "error", "detail": "Verification service temporarily unavailable."},
    )


# Boot snapshot (stdout). Reading a local flow file is cheap; Redis is not touched here.
if settings.STEPS_FILE:
    try:
        from verifychat.store.step_repo import load_flow_file

        log("service_boot", banGateMode=settings.BAN_GATE_MODE, stepsFile=settings.STEPS_FILE,
            steps=len(load_flow_file(settings.STEPS_FILE)))
    except (OSError, ValueError) as e:
        log("service_boot", banGateMode=settings.BAN_GATE_MODE, stepsFile=settings.STEPS_FILE,
            errorType=type(e).__name__, error=str(e)[:300])
else:
    log("service_boot", banGateMode=settings.BAN_GATE_MODE, stepsKey=settings.STEPS_KEY)
