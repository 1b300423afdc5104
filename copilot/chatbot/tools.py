from typing import Any, Literal, Optional

import aiohttp
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from copilot.common.exceptions import UpstreamException
from copilot.common.utils import SimpleTool, tool
from copilot.conversation import ChatMode, PageContext, ResourceType


class DashboardGateway:
    """Thin aiohttp client for the dashboard data API; every call carries the caller's bearer token."""

    def __init__(self, base_url: str, timeout_seconds: float = 30):
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    async def get(self, endpoint: str, bearer_token: str, params: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {bearer_token}", "Content-Type": "application/json", "jwt-auth": "true"}
        query = {k: str(v).lower() if isinstance(v, bool) else v for k, v in (params or {}).items() if v is not None}
        async with aiohttp.ClientSession(timeout=self.timeout) as sess:
            async with sess.get(f"{self.base_url}{endpoint}", headers=headers, params=query) as resp:
                payload = await resp.json(content_type=None)
                if resp.status >= 400:
                    message = payload.get("message") if isinstance(payload, dict) else None
                    raise UpstreamException(message or f"Dashboard API returned {resp.status} for {endpoint}")
                return payload


class ToolContext(BaseModel):
    """Per-request state handed to every tool call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    gateway: DashboardGateway
    bearer_token: str | None = None


class PaginationParams(BaseModel):
    perPage: int = Field(default=50, ge=1, le=100, description="Number of records per page (default: 50, max: 100)")
    page: int = Field(default=1, ge=1, description="Page number for pagination (default: 1)")


class DateRangeParams(PaginationParams):
    from_: Optional[str] = Field(default=None, alias="from", description="Start date (ISO 8601, e.g. 2024-01-01)")
    to: Optional[str] = Field(default=None, description="End date (ISO 8601, e.g. 2024-12-31)")

    model_config = ConfigDict(populate_by_name=True)


class GetTransactionsParams(DateRangeParams):
    status: Optional[Literal["success", "failed", "abandoned"]] = Field(default=None, description="Filter by transaction status")
    channel: Optional[Literal["card", "bank", "ussd", "mobile_money", "bank_transfer"]] = Field(default=None, description="Filter by payment channel")
    customer: Optional[str] = Field(default=None, description="Filter by the `id` field of the customer object, not the customer code")
    currency: Optional[str] = Field(default=None, description="Filter by currency")


class GetCustomersParams(PaginationParams):
    email: Optional[str] = Field(default=None, description="Filter by email")


class GetRefundsParams(DateRangeParams):
    status: Optional[Literal["pending", "processing", "processed", "failed"]] = Field(default=None, description="Filter by refund status")
    transaction: Optional[int] = Field(default=None, description="Filter by transaction id")


class GetPayoutsParams(DateRangeParams):
    status: Optional[Literal["success", "processing", "pending", "failed"]] = Field(default=None, description="Filter by payout status")


class GetDisputesParams(DateRangeParams):
    status: Optional[Literal["awaiting-merchant-feedback", "awaiting-bank-feedback", "pending", "resolved"]] = Field(
        default=None, description="Filter by dispute status"
    )
    transaction: Optional[int] = Field(default=None, description="Filter by transaction id")


class ExportTransactionsParams(BaseModel):
    from_: Optional[str] = Field(default=None, alias="from", description="Start date (ISO 8601)")
    to: Optional[str] = Field(default=None, description="End date (ISO 8601)")
    status: Optional[Literal["success", "failed", "abandoned"]] = Field(default=None, description="Filter by transaction status")
    customer: Optional[str] = Field(default=None, description="Filter by customer id")

    model_config = ConfigDict(populate_by_name=True)


async def _fetch(context: ToolContext, endpoint: str, params: BaseModel, label: str) -> dict[str, Any]:
    if not context.bearer_token:
        return {"error": "Authentication token not available. Please ensure you are logged in."}
    try:
        response = await context.gateway.get(endpoint, context.bearer_token, params.model_dump(by_alias=True, exclude_none=True))
    except (UpstreamException, aiohttp.ClientError) as e:
        logger.warning(f"Fetching {label} failed: {e}")
        return {"error": f"Failed to fetch {label}: {e}"}
    records = response.get("data") or []
    return {
        "success": True,
        label: records,
        "meta": response.get("meta"),
        "message": f"Retrieved {len(records) if isinstance(records, list) else 1} {label}",
    }


@tool("getTransactions", description="Fetch payment transactions. Supports filtering by date range, status, channel, customer and currency.", args_schema=GetTransactionsParams)
async def get_transactions(context: ToolContext, params: GetTransactionsParams) -> dict[str, Any]:
    return await _fetch(context, "/transaction", params, "transactions")


@tool("getCustomers", description="Fetch customers, optionally filtered by email.", args_schema=GetCustomersParams)
async def get_customers(context: ToolContext, params: GetCustomersParams) -> dict[str, Any]:
    return await _fetch(context, "/customer", params, "customers")


@tool("getRefunds", description="Fetch refunds. Supports filtering by date range, status and transaction id.", args_schema=GetRefundsParams)
async def get_refunds(context: ToolContext, params: GetRefundsParams) -> dict[str, Any]:
    return await _fetch(context, "/refund", params, "refunds")


@tool("getPayouts", description="Fetch payouts (settlements). Supports filtering by date range and status.", args_schema=GetPayoutsParams)
async def get_payouts(context: ToolContext, params: GetPayoutsParams) -> dict[str, Any]:
    return await _fetch(context, "/settlement", params, "payouts")


@tool("getDisputes", description="Fetch disputes. Supports filtering by date range, status and transaction id.", args_schema=GetDisputesParams)
async def get_disputes(context: ToolContext, params: GetDisputesParams) -> dict[str, Any]:
    return await _fetch(context, "/dispute", params, "disputes")


@tool("exportTransactions", description="Request a CSV export of transactions; returns a download link.", args_schema=ExportTransactionsParams)
async def export_transactions(context: ToolContext, params: ExportTransactionsParams) -> dict[str, Any]:
    return await _fetch(context, "/transaction/export", params, "export")


ALL_TOOLS: list[SimpleTool] = [get_transactions, get_customers, get_refunds, get_payouts, get_disputes, export_transactions]

RESOURCE_TOOL_MAP: dict[ResourceType, list[str]] = {
    ResourceType.TRANSACTION: ["getCustomers", "getRefunds", "getDisputes"],
    ResourceType.CUSTOMER: ["getTransactions", "getRefunds", "exportTransactions"],
    ResourceType.REFUND: ["getTransactions", "getCustomers"],
    ResourceType.PAYOUT: ["getTransactions"],
    ResourceType.DISPUTE: ["getTransactions", "getCustomers", "getRefunds"],
}


def get_tools(mode: ChatMode, page_context: PageContext | None = None) -> list[SimpleTool]:
    """Global conversations get every dashboard tool; page conversations only those related to the pinned resource."""
    if mode is ChatMode.GLOBAL or page_context is None:
        return list(ALL_TOOLS)
    allowed = RESOURCE_TOOL_MAP[page_context.type]
    return [t for t in ALL_TOOLS if t.name in allowed]
