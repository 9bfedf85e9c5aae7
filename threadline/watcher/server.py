"""
Watcher Server

FastAPI server that receives chat events, buffers them and hands closed
conversation chunks to the downstream consumer.

Endpoints:
- POST /slack/events: Slack webhook endpoint
- GET /health: Health check
- GET /stats: Per-channel buffer diagnostics
- POST /evaluate: Run an evaluation pass now
- DELETE /buffer/{channel_id}: Clear one channel
- DELETE /buffer: Clear every channel

Pipeline:
1. Receive webhook event
2. Parse with the Slack handler
3. Ingest and due-check the message's own channel
4. Periodic tick due-checks every channel
5. Forward drained chunks in the background
"""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..buffer import ChannelBufferStore, EvaluationScheduler, PrivacyFilter
from ..common.clock import Clock, system_clock
from ..common.config import ThreadlineConfig, load_config
from ..common.models import InvalidMessage
from .directory import SlackDirectory
from .forwarder import ChunkForwarder, summarize
from .handlers import SlackHandler

logger = logging.getLogger("threadline.watcher.server")


# =============================================================================
# Response Models
# =============================================================================

class ChannelStats(BaseModel):
    """Buffer diagnostics for one channel"""
    channel_id: str
    buffered: int
    main: int
    threads: int
    unevaluated: int
    due: bool


class StatsResponse(BaseModel):
    service: str
    total_buffered: int
    channels: List[ChannelStats]


class ChunkSummary(BaseModel):
    channel_id: str
    thread_id: Optional[str] = None
    message_count: int
    start_time: str
    end_time: str


class EvaluateResponse(BaseModel):
    chunk_count: int
    chunks: List[ChunkSummary]


# =============================================================================
# Periodic Evaluation
# =============================================================================

async def run_ticks(scheduler: EvaluationScheduler, forwarder: ChunkForwarder, interval: float):
    """Due-check every channel each ``interval`` seconds until cancelled"""
    logger.info("Periodic evaluation every %.0fs", interval)
    while True:
        await asyncio.sleep(interval)
        try:
            chunks = scheduler.tick()
        except Exception:
            logger.exception("Evaluation tick failed")
            continue
        if chunks:
            await forwarder.forward(chunks)


# =============================================================================
# App Factory
# =============================================================================

def create_app(
    config: Optional[ThreadlineConfig] = None,
    clock: Optional[Clock] = None,
    forwarder: Optional[ChunkForwarder] = None,
    directory: Optional[SlackDirectory] = None,
) -> FastAPI:
    """
    Build the app with its own store and scheduler.

    Components live on ``app.state``; nothing is kept in module globals, so
    several apps (e.g. one per test) never share buffers.
    """
    config = config or load_config()
    clock = clock or system_clock

    store = ChannelBufferStore(max_messages=config.buffer.max_messages, clock=clock)
    scheduler = EvaluationScheduler(
        store,
        config=config.buffer,
        privacy_filter=PrivacyFilter(config.privacy),
        clock=clock,
    )
    directory = directory or SlackDirectory(bot_token=config.slack.bot_token)
    forwarder = forwarder or ChunkForwarder(
        url=config.forwarder.url,
        timeout=config.forwarder.timeout_seconds,
        workspace_domain=config.slack.workspace_domain,
        directory=directory,
    )
    slack_handler = SlackHandler(
        signing_secret=config.slack.signing_secret,
        watch_channel_ids=config.slack.watch_channel_ids,
        directory=directory,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting up (max_messages=%d, gap=%s min, threshold=%d)",
                    config.buffer.max_messages,
                    config.buffer.conversation_gap_minutes,
                    config.buffer.evaluation_threshold)
        if config.slack.watch_channel_ids:
            logger.info("Watching channels: %s", ", ".join(config.slack.watch_channel_ids))
        if not forwarder.is_configured:
            logger.info("No forward URL configured, chunks are only logged")

        tick_task = None
        interval = config.buffer.evaluation_interval_seconds
        if interval > 0:
            tick_task = asyncio.create_task(run_ticks(scheduler, forwarder, interval))

        yield

        logger.info("Shutting down (%d messages still buffered)", store.total_message_count())
        if tick_task is not None:
            tick_task.cancel()
            try:
                await tick_task
            except asyncio.CancelledError:
                pass

    app = FastAPI(
        title="Threadline Watcher",
        description="Conversation chunking for chat streams",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.store = store
    app.state.scheduler = scheduler
    app.state.forwarder = forwarder
    app.state.slack_handler = slack_handler

    # -------------------------------------------------------------------------
    # Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health")
    async def health():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "watcher",
            "channels": len(store.channel_ids()),
            "buffered_messages": store.total_message_count(),
            "forwarding": forwarder.is_configured,
        }

    @app.post("/slack/events")
    async def slack_events(
        request: Request,
        background_tasks: BackgroundTasks,
        x_slack_signature: Optional[str] = Header(None),
        x_slack_request_timestamp: Optional[str] = Header(None),
    ):
        """
        Handle Slack webhook events.

        This is the main entry point for Slack integration.
        """
        body = await request.body()

        if not slack_handler.verify_signature(
            body,
            x_slack_signature or "",
            x_slack_request_timestamp or "",
        ):
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            data = json.loads(body)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="Invalid JSON")

        if slack_handler.is_url_verification(data):
            return JSONResponse({"challenge": slack_handler.get_challenge(data)})

        try:
            message = await slack_handler.parse_event(data)
        except InvalidMessage as e:
            # Acknowledge anyway so Slack does not retry a payload we can never use
            logger.warning("Ignoring invalid Slack message: %s", e)
            return JSONResponse({"ok": True, "ignored": "invalid"})

        if message is None or not slack_handler.should_process(message):
            return JSONResponse({"ok": True})

        chunks = scheduler.on_message(message)
        logger.debug(
            "[%s] %s%s: %s",
            message.channel_id,
            message.author_name,
            " (thread reply)" if slack_handler.is_thread_reply(message) else "",
            message.text[:50],
        )
        if chunks:
            background_tasks.add_task(forwarder.forward, chunks)

        return JSONResponse({"ok": True})

    @app.get("/stats", response_model=StatsResponse)
    async def get_stats():
        """Per-channel buffer diagnostics"""
        channels = []
        for channel_id in store.channel_ids():
            snapshot = store.snapshot(channel_id)
            channels.append(ChannelStats(
                channel_id=channel_id,
                buffered=snapshot.message_count,
                main=len(snapshot.main),
                threads=len(snapshot.threads),
                unevaluated=snapshot.unevaluated_count,
                due=scheduler.is_due(channel_id),
            ))
        return StatsResponse(
            service="watcher",
            total_buffered=store.total_message_count(),
            channels=channels,
        )

    @app.post("/evaluate", response_model=EvaluateResponse)
    async def evaluate(background_tasks: BackgroundTasks):
        """Run an evaluation pass over every channel now"""
        chunks = scheduler.tick()
        if chunks:
            background_tasks.add_task(forwarder.forward, chunks)
        return EvaluateResponse(
            chunk_count=len(chunks),
            chunks=[ChunkSummary(**item) for item in summarize(chunks)],
        )

    @app.delete("/buffer/{channel_id}")
    async def clear_channel(channel_id: str) -> Dict[str, str]:
        """Clear one channel's buffers"""
        if not store.clear_channel(channel_id):
            raise HTTPException(status_code=404, detail="Channel not buffered")
        return {"status": "cleared", "channel_id": channel_id}

    @app.delete("/buffer")
    async def clear_all():
        """Clear every channel's buffers"""
        return {"status": "cleared", "channels": store.clear_all()}

    return app


# =============================================================================
# CLI Entry Point
# =============================================================================

def run_server():
    """Run the watcher server"""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    port = config.slack.port

    logger.info("Starting server on port %d", port)
    uvicorn.run(
        create_app(config),
        host="0.0.0.0",
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
