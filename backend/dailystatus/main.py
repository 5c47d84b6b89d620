from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime, timezone
import logging
import uuid

from .core.errors import DomainError
from .core.settings import settings
from .core.security import hash_password
from .routers import auth, users, projects, teams, questions, status, reports, imports
from .db.mongo import connect, close, db

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Daily Status API",
    version="0.1.0",
    swagger_ui_init_oauth={
        "usePkceWithAuthorizationCodeGrant": False,
    }
)

# Add security scheme to OpenAPI schema
app.openapi_schema = None

def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    from fastapi.openapi.utils import get_openapi
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description="Daily status updates, leave tracking and spreadsheet import/export",
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "bearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
            "description": "Enter JWT token obtained from /auth/login endpoint"
        }
    }
    # Every endpoint except login needs the bearer token
    for path, path_item in openapi_schema["paths"].items():
        for method, operation in path_item.items():
            if method in ["post", "get", "put", "delete", "patch"]:
                if "/auth/login" in path:
                    continue
                if "security" not in operation:
                    operation["security"] = [{"bearerAuth": []}]

    app.openapi_schema = openapi_schema
    return app.openapi_schema

app.openapi = custom_openapi

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "errors": exc.details},
    )

@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"detail": "Server error"}
    if settings.is_development:
        content["error"] = str(exc)
    return JSONResponse(status_code=500, content=content)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(projects.router)
app.include_router(teams.router)
app.include_router(questions.router)
app.include_router(status.router)
app.include_router(reports.router)
app.include_router(imports.router)


async def seed_admin():
    """Create the default admin user if no user has that email."""
    email = settings.SEED_ADMIN_EMAIL.lower()
    existing = await db()["users"].find_one({"email": email})
    if existing:
        logger.info("Admin user already exists")
        return
    now = datetime.now(timezone.utc)
    doc = {
        "user_id": str(uuid.uuid4()),
        "name": "Administrator",
        "email": email,
        "password_hash": hash_password(settings.SEED_ADMIN_PASSWORD),
        "role": "admin",
        "teams": [],
        "projects": [],
        "created_by": None,
        "created_at": now,
        "updated_at": now,
        "last_login_at": None,
    }
    await db()["users"].insert_one(doc)
    logger.info("Seeded admin user %s", email)


@app.on_event("startup")
async def startup():
    await connect()
    try:
        await seed_admin()
    except Exception:
        logger.exception("Could not seed admin user")

@app.on_event("shutdown")
async def shutdown():
    await close()

@app.get("/")
async def root():
    return {
        "message": "Daily Status API running",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
