from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from intranet.core.config import settings
from intranet.routers import chat_rooms, employees, files, me, notifications
from intranet.services.chat_runtime import get_chat_runtime

OPENAPI_TAGS = [
    {"name": "Me", "description": "The authenticated employee and their permissions."},
    {"name": "Employees", "description": "The employee directory of the caller's hospital."},
    {"name": "Chat Rooms", "description": "Chat rooms, participants, messages and streams."},
    {"name": "Notifications", "description": "In-app notifications and announcements."},
    {"name": "Files", "description": "File uploads for attachments and shared documents."},
]

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Hospital intranet API. "
        "Chat rooms with realtime delivery, notifications and file storage."
    ),
    openapi_tags=OPENAPI_TAGS,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def options_handler(request: Request, call_next):  # type: ignore[no-untyped-def]
    if request.method == "OPTIONS":
        origin = request.headers.get("origin", "*")
        return Response(
            status_code=200,
            headers={
                "Access-Control-Allow-Origin": origin,
                "Access-Control-Allow-Methods": "*",
                "Access-Control-Allow-Headers": "*",
                "Access-Control-Allow-Credentials": "true",
                "Access-Control-Max-Age": "86400",
            },
        )
    return await call_next(request)


app.include_router(me.router, prefix="/v1/me", tags=["Me"])
app.include_router(employees.router, prefix="/v1/employees", tags=["Employees"])
app.include_router(chat_rooms.router, prefix="/v1/chat_rooms", tags=["Chat Rooms"])
app.include_router(
    notifications.router,
    prefix="/v1/notifications",
    tags=["Notifications"],
)
app.include_router(files.router, prefix="/v1/files", tags=["Files"])


@app.get("/")
async def root() -> dict[str, str]:
    runtime = get_chat_runtime()
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
        "chat_storage": "memory" if runtime.router.degraded else "database",
    }
