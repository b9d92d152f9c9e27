from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowhook.config import settings
from flowhook.logging_config import setup_logging
from flowhook.routers import admin, forms, webhook

setup_logging(settings.log_level)

app = FastAPI(
    title="Flowhook API",
    description="Inbound messaging webhook core for workflow automation",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(forms.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
