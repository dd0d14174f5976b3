from pydantic import BaseModel, Field
from typing import Any, Dict, List, Literal, Optional


class TextContent(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    content: List[TextContent]

    @classmethod
    def text(cls, text: str) -> "ToolResult":
        return cls(content=[TextContent(text=text)])


class ToolDefinition(BaseModel):
    name: str
    description: str
    input_schema: Dict[str, Any] = Field(serialization_alias="inputSchema")


class ToolCallRequest(BaseModel):
    name: str
    arguments: Optional[Dict[str, Any]] = None


class ErrorDetail(BaseModel):
    code: int
    message: str


class ErrorMessage(BaseModel):
    error: ErrorDetail
