from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from zipshare.controllers.tool_controller import ToolDispatcher
from zipshare.models.messages import ErrorDetail, ErrorMessage, ToolCallRequest
from zipshare.utils.exceptions import ToolError


route = APIRouter(prefix="/api", tags=["tools_router"])


def get_dispatcher(req: Request) -> ToolDispatcher:
    return req.app.state.dispatcher


@route.get("/tools")
async def list_tools(req: Request):
    tools = get_dispatcher(req).list_tools()
    return {"tools": [tool.model_dump(by_alias=True) for tool in tools]}


@route.post("/tools/call")
async def call_tool(data: ToolCallRequest, req: Request):
    try:
        result = await get_dispatcher(req).call(data.name, data.arguments)
    except ToolError as e:
        status_code = 404 if e.code == ToolError.METHOD_NOT_FOUND else 500
        return JSONResponse(
            status_code=status_code,
            content=ErrorMessage(error=ErrorDetail(code=e.code, message=e.message)).model_dump(),
        )

    return result
