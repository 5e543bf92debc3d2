import io
import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from formats import load_workbook
from protocol import PROTOCOL_VERSION, RpcServer, ToolHandler
from protocol.api import create_app
from protocol.types import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND, PARSE_ERROR


@pytest.fixture
def server(workbook):
    return RpcServer(workbook)


async def rpc(server, method, params=None, request_id=1):
    message = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        message["params"] = params
    return await server.handle(message)


async def initialized(server):
    await rpc(server, "initialize", {"clientInfo": {"name": "pytest"}})
    return server


async def call_tool(server, name, arguments=None):
    response = await rpc(server, "tools/call", {"name": name, "arguments": arguments or {}})
    result = response["result"]
    text = result["content"][0]["text"]
    if result["isError"]:
        return None, text
    return json.loads(text), None


@pytest.mark.asyncio
async def test_initialize(server):
    response = await rpc(server, "initialize", {"protocolVersion": PROTOCOL_VERSION})
    assert response["jsonrpc"] == "2.0"
    assert response["id"] == 1
    result = response["result"]
    assert result["protocolVersion"] == PROTOCOL_VERSION
    assert result["serverInfo"]["name"] == "unitcalc"
    assert "tools" in result["capabilities"]
    assert server.initialized


@pytest.mark.asyncio
async def test_requests_before_initialize_fail(server):
    response = await rpc(server, "tools/list")
    assert response["error"]["code"] == INTERNAL_ERROR
    assert response["error"]["message"] == "Server not initialized"

    assert (await rpc(server, "ping"))["result"] == {}


@pytest.mark.asyncio
async def test_protocol_errors(server):
    assert (await server.handle_text("{nope"))["error"]["code"] == PARSE_ERROR
    assert (await server.handle([1, 2]))["error"]["code"] == INVALID_REQUEST
    assert (await server.handle({"jsonrpc": "1.0", "id": 3, "method": "ping"}))["error"]["code"] == INVALID_REQUEST
    assert (await server.handle({"jsonrpc": "2.0", "id": 4}))["error"]["code"] == INVALID_REQUEST

    missing = await rpc(server, "tables/drop", request_id="abc")
    assert missing["id"] == "abc"
    assert missing["error"]["code"] == METHOD_NOT_FOUND
    assert "tables/drop" in missing["error"]["message"]


@pytest.mark.asyncio
async def test_notifications_get_no_response(server):
    assert await server.handle({"jsonrpc": "2.0", "method": "notifications/initialized"}) is None


@pytest.mark.asyncio
async def test_tools_list(server):
    await initialized(server)
    response = await rpc(server, "tools/list")
    tools = {tool["name"]: tool for tool in response["result"]["tools"]}
    assert set(tools) == {
        "read_cell", "read_range", "write_cell", "write_range", "get_sheet_structure",
        "list_tables", "convert_value", "get_conversion_rate", "list_compatible_units",
        "validate_unit", "get_workbook_metadata",
    }
    assert tools["read_cell"]["inputSchema"]["required"] == ["cell_ref"]


@pytest.mark.asyncio
async def test_tools_call_validation(server):
    await initialized(server)
    missing_name = await rpc(server, "tools/call", {"arguments": {}})
    assert missing_name["error"]["code"] == INVALID_PARAMS

    bad_arguments = await rpc(server, "tools/call", {"name": "read_cell", "arguments": [1]})
    assert bad_arguments["error"]["code"] == INVALID_PARAMS

    _, error = await call_tool(server, "drop_everything")
    assert error == "Unknown tool: drop_everything"


@pytest.mark.asyncio
async def test_write_and_read_cells(server):
    await initialized(server)
    written, _ = await call_tool(server, "write_cell", {"cell_ref": "A1", "value": 100, "unit": "mi"})
    assert written["success"]
    assert written["value"] == {"type": "number", "value": 100.0, "unit": "mi"}

    await call_tool(server, "write_cell", {"cell_ref": "A2", "value": "50 km"})
    await call_tool(server, "write_cell", {"cell_ref": "A3", "value": "=A1 + A2"})

    cell, _ = await call_tool(server, "read_cell", {"cell_ref": "A3"})
    assert cell["formula"] == "=A1 + A2"
    assert cell["unit"]["canonical"] == "mi"
    assert cell["unit"]["dimension"] == "Length"
    assert cell["display"] == "131.07 mi"
    assert cell["value"]["value"] == pytest.approx(131.0686, rel=1e-6)
    assert cell["is_number"] and not cell["is_error"]

    _, error = await call_tool(server, "read_cell", {"cell_ref": "Z9"})
    assert error == "Cell Z9 is empty or does not exist"


@pytest.mark.asyncio
async def test_write_cell_unit_validation(server):
    await initialized(server)
    _, error = await call_tool(server, "write_cell", {"cell_ref": "A1", "value": 5, "unit": "furlongs"})
    assert "Invalid unit" in error
    assert server.workbook.get_cell("Sheet1", "A1") is None

    stored, _ = await call_tool(
        server, "write_cell", {"cell_ref": "A1", "value": 5, "unit": "furlongs", "validate": False}
    )
    assert stored["value"] == {"type": "text", "value": "5 furlongs"}

    _, error = await call_tool(server, "write_cell", {"cell_ref": "A1", "value": True})
    assert "Invalid value type" in error
    _, error = await call_tool(server, "write_cell", {"cell_ref": "not a cell", "value": 1})
    assert error


@pytest.mark.asyncio
async def test_write_cell_reports_warning(server):
    await initialized(server)
    written, _ = await call_tool(server, "write_cell", {"cell_ref": "B1", "value": "=5 m + 10 s"})
    assert "Incompatible units" in written["warning"]


@pytest.mark.asyncio
async def test_write_range_is_atomic(server):
    await initialized(server)
    _, error = await call_tool(
        server,
        "write_range",
        {"cells": [{"cell_ref": "A1", "value": 1, "unit": "m"}, {"cell_ref": "A2", "value": 1, "unit": "zz"}]},
    )
    assert error
    assert server.workbook.get_cell("Sheet1", "A1") is None

    result, _ = await call_tool(
        server,
        "write_range",
        {
            "cells": [
                {"cell_ref": "A1", "value": 75, "unit": "USD/hr"},
                {"cell_ref": "A2", "value": 40, "unit": "hr"},
                {"cell_ref": "A3", "value": "=A1 * A2"},
            ]
        },
    )
    assert result["written"] == 3
    assert result["cells"][2]["value"] == {"type": "number", "value": 3000.0, "unit": "USD"}


@pytest.mark.asyncio
async def test_read_range_and_structure(server):
    await initialized(server)
    server.workbook.set_cell("Sheet1", "A1", "1 kg")
    server.workbook.set_cell("Sheet1", "B2", "=A1 * 2")
    server.workbook.set_cell("Sheet1", "C1", "weight: 3 kg")

    cells, _ = await call_tool(server, "read_range", {"range": "A1:B2"})
    assert cells["rows"] == 2 and cells["columns"] == 2
    assert [cell["cell_ref"] for cell in cells["cells"]] == ["A1", "B2"]

    structure, _ = await call_tool(server, "get_sheet_structure", {})
    assert structure["sheet_name"] == "Sheet1"
    assert structure["used_cells"] == 3
    assert structure["formula_cells"] == ["B2"]
    assert structure["named_ranges"] == {"weight": "C1"}

    tables, _ = await call_tool(server, "list_tables")
    assert tables["tables"][0]["name"] == "Sheet1"
    assert tables["active_sheet"] == "Sheet1"

    _, error = await call_tool(server, "get_sheet_structure", {"sheet_name": "Nope"})
    assert "Nope" in error


@pytest.mark.asyncio
async def test_unit_tools(server):
    await initialized(server)
    converted, _ = await call_tool(
        server, "convert_value", {"value": 100, "from_unit": "C", "to_unit": "F", "include_path": True}
    )
    assert converted["converted"] == {"value": pytest.approx(212), "unit": "F"}
    assert converted["path"]["affine"] is True

    currency, _ = await call_tool(server, "convert_value", {"value": 100, "from_unit": "USD", "to_unit": "EUR"})
    assert currency["converted"]["value"] == pytest.approx(92)
    assert currency["provenance"] == "hardcoded"

    _, error = await call_tool(server, "convert_value", {"value": 1, "from_unit": "m", "to_unit": "s"})
    assert error

    rate, _ = await call_tool(server, "get_conversion_rate", {"from_unit": "km", "to_unit": "m"})
    assert rate["rate"] == pytest.approx(1000)
    assert rate["formula"] == "1 km = 1000 m"

    compatible, _ = await call_tool(server, "list_compatible_units", {"unit": "GB"})
    assert "MB" in compatible["compatible_units"]
    assert compatible["count"] == len(compatible["compatible_units"])

    valid, _ = await call_tool(server, "validate_unit", {"unit": "mi/hr"})
    assert valid == {"valid": True, "input": "mi/hr", "canonical": "mi/hr", "dimension": "Length*Time^-1"}
    invalid, _ = await call_tool(server, "validate_unit", {"unit": "parsecs"})
    assert invalid["valid"] is False


@pytest.mark.asyncio
async def test_workbook_metadata(server):
    await initialized(server)
    server.workbook.set_cell("Sheet1", "A1", "rate: 5%")
    server.workbook.set_cell("Sheet1", "A2", "3 kg")
    server.workbook.set_currency_rate("EUR", 0.5)

    metadata, _ = await call_tool(server, "get_workbook_metadata")
    assert metadata["sheet_count"] == 1
    assert metadata["named_ranges"] == {"rate": "Sheet1!A1"}
    assert metadata["units_in_use"] == ["%", "kg"]
    assert metadata["currency_rates"]["EUR"] == {"rate": 0.5, "provenance": "manual"}
    assert metadata["display_preference"] == "as_entered"


@pytest.mark.asyncio
async def test_resources(server):
    await initialized(server)
    server.workbook.set_cell("Sheet1", "A1", "2 m")

    listed = await rpc(server, "resources/list")
    uris = [resource["uri"] for resource in listed["result"]["resources"]]
    assert uris == ["unitcalc://workbook", "unitcalc://sheet/Sheet1"]

    workbook = await rpc(server, "resources/read", {"uri": "unitcalc://workbook"})
    document = json.loads(workbook["result"]["contents"][0]["text"])
    assert document["version"] == "1.0"

    sheet = await rpc(server, "resources/read", {"uri": "unitcalc://sheet/Sheet1"})
    snapshot = json.loads(sheet["result"]["contents"][0]["text"])
    assert snapshot["cells"]["A1"]["display"] == "2 m"

    missing = await rpc(server, "resources/read", {"uri": "unitcalc://sheet/Other"})
    assert missing["error"]["code"] == INVALID_PARAMS
    unknown = await rpc(server, "resources/read", {"uri": "file:///etc/passwd"})
    assert unknown["error"]["code"] == INVALID_PARAMS


@pytest.mark.asyncio
async def test_saves_after_dirty_tool_call(workbook, tmp_path: Path):
    path = tmp_path / "book.json"
    server = RpcServer(workbook, path=path)
    await initialized(server)

    await call_tool(server, "list_tables")
    assert not path.exists()

    await call_tool(server, "write_cell", {"cell_ref": "A1", "value": 4, "unit": "GB"})
    assert path.exists()
    assert not workbook.dirty
    assert load_workbook(path).value("Sheet1", "A1").magnitude == 4.0


@pytest.mark.asyncio
async def test_failed_save_is_reported(workbook, tmp_path: Path):
    server = RpcServer(workbook, path=tmp_path)
    await initialized(server)

    response = await rpc(
        server, "tools/call", {"name": "write_cell", "arguments": {"cell_ref": "A1", "value": 1}}
    )
    assert response["error"]["code"] == INTERNAL_ERROR
    assert "Failed to write workbook" in response["error"]["message"]
    assert workbook.dirty


@pytest.mark.asyncio
async def test_stdio_transport(server):
    lines = [
        json.dumps({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {}}),
        json.dumps({"jsonrpc": "2.0", "method": "notifications/initialized"}),
        "",
        "garbage",
        json.dumps(
            {
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {"name": "write_cell", "arguments": {"cell_ref": "A1", "value": "3 ft"}},
            }
        ),
    ]
    stdin = io.StringIO("\n".join(lines) + "\n")
    stdout = io.StringIO()

    await server.serve_stdio(stdin=stdin, stdout=stdout)

    responses = [json.loads(line) for line in stdout.getvalue().splitlines()]
    assert [response.get("id") for response in responses] == [1, None, 2]
    assert responses[1]["error"]["code"] == PARSE_ERROR
    assert responses[2]["result"]["isError"] is False


def test_tool_handler_direct(workbook):
    handler = ToolHandler(workbook)
    result = handler.call("validate_unit", {"unit": "kg"})
    assert not result.is_error
    assert json.loads(result.content[0].text)["canonical"] == "kg"
    assert handler.call("validate_unit", {}).is_error


def test_http_transport(server):
    client = TestClient(create_app(server))

    assert client.get("/health").json()["status"] == "ok"

    response = client.post("/rpc", json={"jsonrpc": "2.0", "id": 7, "method": "initialize"})
    assert response.status_code == 200
    assert response.json()["result"]["serverInfo"]["name"] == "unitcalc"

    notification = client.post("/rpc", json={"jsonrpc": "2.0", "method": "ping"})
    assert notification.status_code == 204

    bad = client.post("/rpc", content=b"{broken")
    assert bad.json()["error"]["code"] == PARSE_ERROR
