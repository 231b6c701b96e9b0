"""FastAPI application entry point for the issue responder.

This module wires settings, clients and the pipeline orchestrator into a
webhook receiver. Deliveries are acknowledged immediately; each accepted
event is handled by its own background task.

Endpoints:
- POST /webhooks/github: receive issue and issue_comment deliveries
- GET /health: liveness probe
- GET /ready: readiness probe (delivery store connectivity)
- GET /metrics: Prometheus metrics
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional, Set

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from issue_responder.config import ResponderSettings, get_settings
from issue_responder.delivery.repository import PostgresDeliveryStore
from issue_responder.delivery.store import DeliveryStore, InMemoryDeliveryStore
from issue_responder.events.emitter import EventSinkType, create_event_emitter
from issue_responder.events.metrics import generate_metrics_output
from issue_responder.extractor.content import ContentExtractor
from issue_responder.github.client import GitHubClient
from issue_responder.github.poster import ResponsePoster
from issue_responder.llm.client import LLMClient
from issue_responder.orchestrator import PipelineOrchestrator
from issue_responder.prompt.builder import PromptBuilder
from issue_responder.retry import RetryPolicy, exponential_backoff
from issue_responder.webhook.handler import WebhookHandler

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global instances, initialized during lifespan startup
settings: Optional[ResponderSettings] = None
orchestrator: Optional[PipelineOrchestrator] = None
webhook_handler: Optional[WebhookHandler] = None
github_client: Optional[GitHubClient] = None
delivery_store: Optional[DeliveryStore] = None

_background_tasks: Set["asyncio.Task[object]"] = set()


def _redact_secret(value: Optional[str], visible_chars: int = 4) -> str:
    """Redact a secret value, showing only the first few characters."""
    if not value:
        return "<unset>"
    if len(value) <= visible_chars:
        return "*" * len(value)
    return value[:visible_chars] + "*" * (len(value) - visible_chars)


def _log_configuration(cfg: ResponderSettings) -> None:
    """Log configuration values with secrets redacted."""
    logger.info("Responder configuration:")
    logger.info(f"  GitHub Base URL: {cfg.github_base_url}")
    logger.info(f"  GitHub Token: {_redact_secret(cfg.github_token)}")
    logger.info(f"  Trigger Phrase: {cfg.trigger_phrase!r}")
    logger.info(f"  Allowed Labels: {cfg.allowed_labels}")
    logger.info(f"  Include History: {cfg.include_history}")
    logger.info(f"  LLM URL: {cfg.llm_url}")
    logger.info(f"  LLM API Key: {_redact_secret(cfg.llm_api_key)}")
    logger.info(f"  LLM Model: {cfg.llm_model}")
    logger.info(f"  Max Prompt Length: {cfg.max_prompt_length}")
    logger.info(f"  Max Attempts: {cfg.max_retries}")
    logger.info(f"  Request Timeout: {cfg.request_timeout}")
    logger.info(f"  Processing Deadline: {cfg.processing_deadline}")
    logger.info(f"  Database URL: {_redact_secret(cfg.database_url)}")
    logger.info(f"  Host: {cfg.host}")
    logger.info(f"  Port: {cfg.port}")


def build_retry_policy(cfg: ResponderSettings) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=cfg.max_retries,
        backoff=exponential_backoff(
            base_delay=cfg.backoff_base_delay,
            max_delay=cfg.backoff_max_delay,
        ),
        max_delay=cfg.backoff_max_delay,
    )


def create_delivery_store(cfg: ResponderSettings) -> DeliveryStore:
    """Select the PostgreSQL store when a database URL is configured."""
    if cfg.database_url:
        return PostgresDeliveryStore(cfg.database_url, claim_ttl=cfg.claim_ttl)
    logger.warning("No database configured, delivery records are kept in memory")
    return InMemoryDeliveryStore(claim_ttl=cfg.claim_ttl)


def build_orchestrator(
    cfg: ResponderSettings,
    gh_client: GitHubClient,
    store: DeliveryStore,
) -> PipelineOrchestrator:
    """Wire all pipeline dependencies into a PipelineOrchestrator.

    Args:
        cfg: Validated responder settings.
        gh_client: Authenticated GitHub API client.
        store: Delivery record store.

    Returns:
        Fully wired PipelineOrchestrator.
    """
    retry_policy = build_retry_policy(cfg)

    llm_client = LLMClient(
        llm_url=cfg.llm_url,
        api_key=cfg.llm_api_key,
        model_name=cfg.llm_model,
        retry_policy=retry_policy,
        request_timeout=cfg.request_timeout,
        max_tokens=cfg.llm_max_tokens,
        temperature=cfg.llm_temperature,
    )

    poster = ResponsePoster(
        github_client=gh_client,
        delivery_store=store,
        retry_policy=retry_policy,
        allowed_labels=cfg.allowed_labels,
    )

    return PipelineOrchestrator(
        settings=cfg,
        extractor=ContentExtractor(trigger_phrase=cfg.trigger_phrase),
        prompt_builder=PromptBuilder(
            max_prompt_length=cfg.max_prompt_length,
            system_instruction_template=cfg.system_instruction_template,
            allowed_labels=cfg.allowed_labels,
        ),
        llm_client=llm_client,
        poster=poster,
        delivery_store=store,
        github_client=gh_client,
        event_emitter=create_event_emitter(
            [EventSinkType.LOGGING, EventSinkType.METRICS]
        ),
        retry_policy=retry_policy,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown.

    Handles:
    - Configuration loading and validation
    - Logging configuration (with secrets redacted)
    - Dependency wiring for the pipeline orchestrator
    - Graceful shutdown and cleanup
    """
    global settings, orchestrator, webhook_handler, github_client, delivery_store

    logger.info("Issue responder starting up...")

    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())
    _log_configuration(settings)

    delivery_store = create_delivery_store(settings)
    if isinstance(delivery_store, PostgresDeliveryStore):
        await delivery_store.connect()

    webhook_handler = WebhookHandler(trigger_phrase=settings.trigger_phrase)
    github_client = GitHubClient(
        token=settings.github_token,
        base_url=settings.github_base_url,
        timeout=settings.request_timeout,
    )
    orchestrator = build_orchestrator(settings, github_client, delivery_store)

    logger.info("Issue responder started successfully")

    yield

    logger.info("Issue responder shutting down...")

    if _background_tasks:
        logger.info(
            "Waiting for in-flight events",
            extra={"count": len(_background_tasks)},
        )
        await asyncio.gather(*_background_tasks, return_exceptions=True)

    if github_client is not None:
        await github_client.close()
    if isinstance(delivery_store, PostgresDeliveryStore):
        await delivery_store.disconnect()

    logger.info("Issue responder shutdown complete")


app = FastAPI(
    title="Issue Responder",
    description="Automated LLM responses to GitHub issue events",
    version="1.0.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health():
    """Liveness probe endpoint."""
    return {"status": "healthy"}


@app.get("/ready")
async def ready():
    """Readiness probe endpoint.

    Returns 503 until the orchestrator is wired and the delivery store
    answers.
    """
    database_status = "unavailable"
    if delivery_store is not None and await delivery_store.health_check():
        database_status = "healthy"

    is_ready = orchestrator is not None and database_status == "healthy"
    return JSONResponse(
        status_code=200 if is_ready else 503,
        content={
            "status": "ready" if is_ready else "not_ready",
            "dependencies": {"database": database_status},
        },
    )


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    """Prometheus metrics endpoint."""
    return PlainTextResponse(generate_metrics_output())


@app.post("/webhooks/github")
async def github_webhook(request: Request):
    """GitHub webhook receiver endpoint.

    Signature validation happens before requests reach this service, so
    payloads are trusted. The delivery is acknowledged immediately and
    handled in a background task.
    """
    if webhook_handler is None or orchestrator is None:
        logger.error("Responder not initialized")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "message": "Responder not initialized"},
        )

    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"status": "error", "message": "Invalid JSON payload"},
        )

    event = webhook_handler.parse_event(
        request.headers.get("X-GitHub-Event", ""),
        payload,
        delivery_id=request.headers.get("X-GitHub-Delivery"),
    )
    if event is None:
        return {"status": "ignored", "message": "Unsupported or invalid event"}

    task = asyncio.create_task(orchestrator.handle(event))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return {"status": "accepted", "event_id": event.event_id, "issue_id": event.issue_id}


def run() -> None:
    """Run the application with uvicorn."""
    import uvicorn

    cfg = get_settings()
    uvicorn.run(
        "issue_responder.main:app",
        host=cfg.host,
        port=cfg.port,
        log_level=cfg.log_level.lower(),
    )


if __name__ == "__main__":
    run()
