from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from mangum import Mangum
from mangum.types import LambdaContext

from copilot.common import get_controllers
from copilot.common.middlewares import UserPopulationMiddleware, register_exception_handlers

app = FastAPI(title="Dashboard Copilot")

app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"https?://(localhost|127\.0\.0\.1|192\.168\.\d+\.\d+)(:\d+)?",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(UserPopulationMiddleware)
register_exception_handlers(app)

for controller in get_controllers():
    app.include_router(controller().router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


asgi_handler = Mangum(app)


def handler(event: dict[str, Any], context: LambdaContext) -> dict[str, Any]:
    """Lambda handler function"""
    headers = event.get("headers") or {}
    user_agent = headers.get("User-Agent", headers.get("user-agent", ""))

    logger_context = {
        "request_id": context.aws_request_id,
        "user_agent": user_agent,
        "x-forwarded-for": headers.get("X-Forwarded-For", ""),
        "httpMethod": event.get("httpMethod", ""),
        "path": event.get("path", ""),
    }

    with logger.contextualize(**logger_context):
        logger.info("Request received")
        response = asgi_handler(event, context)
        logger.info(f"Response generated with status {response.get('statusCode')}")
        return response
