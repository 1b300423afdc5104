from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from copilot.common.exceptions import CopilotException
from copilot.common.models import AuthenticatedUser


def parse_bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class UserPopulationMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        """
        Populates `request.state.user` from the 'x-forwarded-user' header set by the upstream gateway.
        The bearer token from 'Authorization' is kept so dashboard tools can call the data API on the user's behalf.
        """
        user_id = request.headers.get("x-forwarded-user")
        request.state.user = (
            AuthenticatedUser(id=user_id, bearer_token=parse_bearer_token(request.headers.get("authorization"))) if user_id else None
        )
        with logger.contextualize(user_id=user_id):
            return await call_next(request)


def register_exception_handlers(app: FastAPI) -> None:
    """Renders every `CopilotException` as `{status, code, message, data}` with its own status code."""

    @app.exception_handler(CopilotException)
    async def _copilot_exception_handler(request: Request, exc: CopilotException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.info(f"{request.method} {request.url.path} rejected with {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())
