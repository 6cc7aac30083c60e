import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import play, stories
from app.core.config import settings
from app.core.db import init_models


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


app = FastAPI(
    title="Jam Stories Backend",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(stories.router)
app.include_router(play.router)


@app.get("/")
async def root():
    return {"message": "Hello, Jam!"}


@app.on_event("startup")
async def startup():
    if settings.CREATE_SCHEMA_ON_STARTUP:
        await init_models()
