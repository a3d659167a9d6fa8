from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, Response, status
from fastapi.params import Query
from fastapi.responses import JSONResponse

from flowbot.api.webhook import get_workflow_manager, handle_message, verify_webhook
from flowbot.config import settings
from flowbot.crud.workflow import SQLDefinitionStore, SQLSessionStore
from flowbot.db import async_session_factory, create_tables
from flowbot.logging import setup_logger
from flowbot.services.messaging.client import WhatsApp
from flowbot.services.workflow.manager import WorkflowManager

logger = setup_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application startup and shutdown
    - Creates database tables
    - Builds the workflow manager
    - Stops pending conversation processors on shutdown
    """
    await create_tables()
    logger.info("Database tables created")

    app.state.workflow_manager = WorkflowManager(
        client=WhatsApp(),
        definitions=SQLDefinitionStore(async_session_factory),
        sessions=SQLSessionStore(async_session_factory),
    )

    yield

    await app.state.workflow_manager.shutdown()
    logger.info("Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description=settings.PROJECT_DESCRIPTION,
    lifespan=lifespan,
)


@app.get("/", tags=["root"])
async def root():
    return JSONResponse(content={"status": "ok"}, status_code=status.HTTP_200_OK)


# WhatsApp webhook endpoints
@app.get("/webhook")
async def webhook_verification(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
) -> Response:
    return await verify_webhook(hub_mode, hub_verify_token, hub_challenge)


@app.post("/webhook")
async def webhook_handler(
    request: Request,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager),
):
    try:
        data = await request.json()
    except ValueError as e:
        logger.error(f"Error decoding webhook body: {e}")
        return JSONResponse(
            content={"status": "error", "message": "Invalid JSON"},
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return await handle_message(data, workflow_manager)
