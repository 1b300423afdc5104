from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from copilot.chatbot.tools import ALL_TOOLS, DashboardGateway, ToolContext, get_customers, get_tools, get_transactions
from copilot.common.exceptions import UpstreamException
from copilot.conversation import ChatMode, PageContext, ResourceType


def _context(bearer_token: str | None = "token-abc", response=None, error: Exception | None = None) -> tuple[ToolContext, Mock]:
    gateway = Mock(spec=DashboardGateway)
    gateway.get = AsyncMock(return_value=response, side_effect=error)
    return ToolContext(gateway=gateway, bearer_token=bearer_token), gateway


def test_global_mode_gets_every_tool():
    assert get_tools(ChatMode.GLOBAL) == ALL_TOOLS


@pytest.mark.parametrize(
    "resource_type, expected",
    [
        (ResourceType.TRANSACTION, {"getCustomers", "getRefunds", "getDisputes"}),
        (ResourceType.CUSTOMER, {"getTransactions", "getRefunds", "exportTransactions"}),
        (ResourceType.REFUND, {"getTransactions", "getCustomers"}),
        (ResourceType.PAYOUT, {"getTransactions"}),
        (ResourceType.DISPUTE, {"getTransactions", "getCustomers", "getRefunds"}),
    ],
)
def test_page_mode_gets_resource_subset(resource_type: ResourceType, expected: set[str]):
    tools = get_tools(ChatMode.PAGE, PageContext(type=resource_type, resource_id="id_1"))

    assert {t.name for t in tools} == expected


def test_tool_schema_is_function_calling_format():
    schema = get_transactions.to_openai_tool()

    assert schema["type"] == "function"
    assert schema["function"]["name"] == "getTransactions"
    properties = schema["function"]["parameters"]["properties"]
    assert "from" in properties
    assert "perPage" in properties


@pytest.mark.asyncio
async def test_tool_calls_gateway_with_bearer_token_and_aliased_params():
    context, gateway = _context(response={"data": [{"id": 1}, {"id": 2}], "meta": {"total": 2}})

    result = await get_transactions.invoke(context, {"from": "2024-01-01", "status": "success"})

    assert result["success"] is True
    assert result["transactions"] == [{"id": 1}, {"id": 2}]
    endpoint, token, params = gateway.get.await_args.args
    assert endpoint == "/transaction"
    assert token == "token-abc"
    assert params == {"perPage": 50, "page": 1, "from": "2024-01-01", "status": "success"}


@pytest.mark.asyncio
async def test_missing_token_is_reported_to_the_model():
    context, gateway = _context(bearer_token=None)

    result = await get_customers.invoke(context, {})

    assert "error" in result
    gateway.get.assert_not_awaited()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [UpstreamException("401 Unauthorized"), aiohttp.ClientConnectionError("refused")])
async def test_gateway_failures_become_error_results(error: Exception):
    context, _ = _context(error=error)

    result = await get_customers.invoke(context, {"email": "ada@example.com"})

    assert result["error"].startswith("Failed to fetch customers")
