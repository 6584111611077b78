"""
Tool result models for the Pulumi MCP Server.

Every tool handler returns the same shape::

    {"description": str, "content": [{"type": "text", "text": str}, ...],
     "has_more": bool (optional), "taskId": str (optional)}
"""

from typing import Literal, Optional

from pydantic import BaseModel, Field


class TextContent(BaseModel):
    """A single text block in a tool result."""

    type: Literal["text"] = "text"
    text: str


class ToolResult(BaseModel):
    """Result returned by every tool handler."""

    description: str = Field(description="Short summary of what happened")
    content: list[TextContent] = Field(default_factory=list)
    has_more: Optional[bool] = Field(
        default=None,
        description="True when the caller should invoke the tool again to get more data",
    )
    taskId: Optional[str] = Field(default=None, description="Neo task id, once assigned")

    @classmethod
    def text(cls, description: str, *texts: str, **extra) -> "ToolResult":
        """Build a result from one or more text blocks."""
        return cls(
            description=description,
            content=[TextContent(text=t) for t in texts],
            **extra,
        )

    def to_dict(self) -> dict:
        return self.model_dump(exclude_none=True)

    @property
    def texts(self) -> list[str]:
        return [c.text for c in self.content]


def error_result(tool_name: str, message: str) -> ToolResult:
    """Standard failure result for a tool."""
    return ToolResult.text(f"Error executing {tool_name}", f"Operation failed: {message}")
