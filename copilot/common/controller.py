from abc import ABC, abstractmethod
from enum import Enum
from typing import ClassVar

from fastapi import APIRouter, Request

from copilot.common.exceptions import UnauthorizedException
from copilot.common.middlewares import parse_bearer_token
from copilot.common.models import AuthenticatedUser


class BaseController(ABC):
    """
    Base controller class for the application.
    Subclasses declare a `prefix` and register their routes in `router`.
    """

    prefix: ClassVar[str]
    tags: ClassVar[list[str | Enum] | None] = None

    def __init__(self) -> None:
        self.api_router = APIRouter(prefix=f"/api/v1/{self.prefix}" if self.prefix else "", tags=self.tags if self.tags else [self.prefix], redirect_slashes=False)

    @property
    @abstractmethod
    def router(self) -> APIRouter:
        """Abstract property must be implemented by subclasses to return the APIRouter instance."""
        raise NotImplementedError("Subclasses must implement the router property.")


def get_current_user(request: Request) -> AuthenticatedUser:
    """The caller populated by `UserPopulationMiddleware`, or straight from the headers when the middleware is not installed."""
    user = getattr(request.state, "user", None)
    if user is not None:
        return user
    user_id = request.headers.get("x-forwarded-user")
    if not user_id:
        raise UnauthorizedException("Missing x-forwarded-user header")
    return AuthenticatedUser(id=user_id, bearer_token=parse_bearer_token(request.headers.get("authorization")))
