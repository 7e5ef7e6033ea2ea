"""
Calls through an in-process FastMCP client.

These go through the same registration the stdio server uses, so they
check what a UI shell actually sees: advertised schemas, flat tool
arguments and templated resource URIs.
"""

import json

import pytest
from fastmcp import Client


@pytest.fixture
def server():
    # Imported here so the module-level server picks up the test configuration
    from balanghay.server import create_server

    return create_server()


def input_schema(tool) -> dict:
    return tool.model_dump(by_alias=True)["inputSchema"]


@pytest.mark.asyncio
class TestToolRegistration:
    async def test_schemas_list_real_fields(self, server):
        async with Client(server) as client:
            tools = {tool.name: tool for tool in await client.list_tools()}

        borrow = input_schema(tools["borrow_books"])
        assert {"member_id", "book_copy_ids", "due_date"} <= set(borrow["properties"])
        assert "arguments" not in borrow["properties"]
        assert set(borrow["required"]) == {"member_id", "book_copy_ids"}
        assert set(input_schema(tools["renew_loan"])["properties"]) == {"loan_id", "days"}

    async def test_every_tool_is_listed(self, server):
        from balanghay.tools import all_tools

        async with Client(server) as client:
            names = {tool.name for tool in await client.list_tools()}

        assert names == {tool["name"] for tool in all_tools}


@pytest.mark.asyncio
@pytest.mark.circulation
class TestToolCalls:
    async def test_borrow_with_flat_arguments(
        self, server, mock_get_session, sample_member, sample_copies
    ):
        async with Client(server) as client:
            result = await client.call_tool(
                "borrow_books",
                {"member_id": sample_member.id, "book_copy_ids": [sample_copies[0].id]},
            )

        envelope = result.structured_content
        assert envelope["success"] is True
        assert envelope["data"]["loans"][0]["book_copy_id"] == sample_copies[0].id
        assert envelope["data"]["transaction_id"].startswith("LOAN-")

    async def test_bad_arguments_come_back_in_the_envelope(self, server, mock_get_session):
        async with Client(server) as client:
            result = await client.call_tool("borrow_books", {"member_id": 1})

        assert result.structured_content["success"] is False
        assert result.structured_content["message"].startswith("Invalid parameters")


@pytest.mark.asyncio
class TestResourceReads:
    async def test_book_template(self, server, mock_get_session, sample_book):
        async with Client(server) as client:
            contents = await client.read_resource(f"library://books/{sample_book.id}")

        book = json.loads(contents[0].text)
        assert book["id"] == sample_book.id
        assert book["title"] == "Noli Me Tangere"

    async def test_search_template(self, server, mock_get_session, sample_book):
        async with Client(server) as client:
            contents = await client.read_resource("library://books/search/rizal")

        found = json.loads(contents[0].text)
        assert found["query"] == "rizal"
        assert [b["id"] for b in found["books"]] == [sample_book.id]
