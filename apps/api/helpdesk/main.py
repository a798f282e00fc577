import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import settings
from .core.errors import register_error_handlers
from .db import SessionLocal, engine
from .models.user import Base
from .routers import comments, health, me, shared, shares, tickets
from .services.change_watcher import ChangeEventWatcher
from .services.mail_service import build_mail_sender
from .services.mutation_feed import build_mutation_feed
from .services.notification_dispatcher import NotificationDispatcher

import helpdesk.models.company  # noqa: F401
import helpdesk.models.ticket  # noqa: F401
import helpdesk.models.comment  # noqa: F401
import helpdesk.models.history  # noqa: F401
import helpdesk.models.share  # noqa: F401
import helpdesk.models.notification_setting  # noqa: F401
import helpdesk.models.mail_log  # noqa: F401

logger = logging.getLogger(__name__)

app = FastAPI(title="Helpdesk Ticket API")
register_error_handlers(app)

app.state.mutation_feed = build_mutation_feed(
    settings.mutation_feed,
    settings.database_url,
    settings.mutation_channel,
    settings.feed_reconnect_seconds,
)
app.state.watcher = None


@app.on_event("startup")
async def on_startup():
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if settings.auto_db_bootstrap:
        # Create tables in dev if missing.
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    if settings.watcher_enabled:
        dispatcher = NotificationDispatcher(SessionLocal, build_mail_sender(settings))
        watcher = ChangeEventWatcher(app.state.mutation_feed, dispatcher, settings.watcher_queue_size)
        await watcher.start()
        app.state.watcher = watcher
    else:
        logger.info("change watcher disabled")


@app.on_event("shutdown")
async def on_shutdown():
    watcher = app.state.watcher
    if watcher is not None:
        await watcher.stop()
        app.state.watcher = None
    await app.state.mutation_feed.close()
    await engine.dispose()


app.include_router(health.router)
app.include_router(me.router)
app.include_router(tickets.router)
app.include_router(comments.router)
app.include_router(shares.router)
app.include_router(shared.router)

# CORS: allow local dev origins by default.
allow_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
