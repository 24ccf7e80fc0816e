import logging

from fastapi import FastAPI

from .db import Base, engine
from .settings import settings
from .routers import auth
from .routers import imports
from .routers import integration_tokens
from .routers import teacher_push
from .routers import webhooks
from .routers import rewards
from .routers import external_api

logging.basicConfig(
	level=getattr(logging, settings.log_level.upper(), logging.INFO),
	format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = FastAPI(title="Scholar Integration API")
app.include_router(auth.router)
app.include_router(teacher_push.router)
app.include_router(imports.router)
app.include_router(webhooks.router)
app.include_router(integration_tokens.router)
app.include_router(rewards.router)
app.include_router(external_api.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"nycologic_configured": bool(settings.nycologic_api_url),
		"email_configured": bool(settings.brevo_api_key),
	}


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
