import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError
from claimflow.core.config import settings
from claimflow.api.v1.auth import router as auth_router
from claimflow.api.v1.users import router as users_router
from claimflow.api.v1.claims import router as claims_router
from claimflow.api.v1.leaves import router as leaves_router
from claimflow.api.v1.policy import router as policy_router
from claimflow.api.v1.lookups import router as lookups_router
from claimflow.api.v1.dashboard import router as dashboard_router
from claimflow.db.mongo import get_mongo_client, close_mongo_client
from claimflow.db.mongo_indexes import ensure_indexes

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="ClaimFlow Backend")

# Local frontend dev servers plus configured origins
_base_origins = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
}
if settings.FRONTEND_BASE_URL:
    _base_origins.add(settings.FRONTEND_BASE_URL)
for o in settings.ALLOWED_ORIGINS:
    _base_origins.add(o)
# Origin headers never carry a trailing slash
_allowed_origins = sorted({o.rstrip('/') for o in _base_origins if o})

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_origin_regex=r"^http(s)?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def read_root():
    return {"message": "Welcome to ClaimFlow Backend"}


@app.get("/health")
def health_check():
    return {"status": "ok"}


app.include_router(auth_router, prefix="/api/v1")
app.include_router(users_router, prefix="/api/v1")
app.include_router(claims_router, prefix="/api/v1")
app.include_router(leaves_router, prefix="/api/v1")
app.include_router(policy_router, prefix="/api/v1")
app.include_router(lookups_router, prefix="/api/v1")
app.include_router(dashboard_router, prefix="/api/v1")


@app.on_event("startup")
async def on_startup():
    get_mongo_client()
    # Index creation is non-fatal; the API still serves without them
    try:
        await ensure_indexes()
    except PyMongoError as exc:
        logging.getLogger("uvicorn.error").warning("Mongo index initialization failed: %s", exc)


@app.on_event("shutdown")
async def on_shutdown():
    close_mongo_client()
