import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from .config import settings  # noqa: E402
from .database import Database  # noqa: E402
from .routers import admin, cards, decks, progress, users  # noqa: E402

logger = logging.getLogger(__name__)


def create_app(database: Optional[Database] = None) -> FastAPI:
    database = database or Database.from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.init(create_tables=True)
        if not settings.telegram_bot_token:
            logger.warning("TELEGRAM_BOT_TOKEN is not set; requests with initData will get 503")
        try:
            yield
        finally:
            database.dispose()

    app = FastAPI(title="LinguaCards API", lifespan=lifespan)
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(users.router)
    app.include_router(decks.router)
    app.include_router(cards.router)
    app.include_router(progress.router)
    app.include_router(admin.router)
    return app


app = create_app()
