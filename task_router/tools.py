"""Typed tool calls.

Each generation tool is its own frozen dataclass that fixes the task id,
schema and expected shape it routes with, so running a tool is one generic
call instead of a switch on the tool name. parse_tool_call() is the only
place an untyped name is looked up.
"""

from dataclasses import dataclass
from typing import Any, ClassVar

from task_router.models import CallResult, Expect, Mode, SchemaName, TaskId
from task_router.router import Router


@dataclass(frozen=True)
class ToolCall:
    prompt: str
    user_mode: Mode | None = None

    name: ClassVar[str]
    task: ClassVar[TaskId]
    schema: ClassVar[SchemaName | None]
    expect: ClassVar[Expect]


@dataclass(frozen=True)
class TopicMapCall(ToolCall):
    name = "topic_map"
    task = TaskId.TOPIC_MAP
    schema = SchemaName.MODULES
    expect = Expect.JSON


@dataclass(frozen=True)
class ChunkAssignCall(ToolCall):
    name = "assign_chunks"
    task = TaskId.CHUNK_CLASSIFY
    schema = SchemaName.ASSIGNMENTS
    expect = Expect.JSON


@dataclass(frozen=True)
class QuizCall(ToolCall):
    name = "quiz"
    task = TaskId.QUIZ_GENERATE
    schema = SchemaName.QUIZ
    expect = Expect.JSON


@dataclass(frozen=True)
class OverviewCall(ToolCall):
    name = "overview"
    task = TaskId.OVERVIEW_SUMMARIZE
    schema = None
    expect = Expect.TEXT


@dataclass(frozen=True)
class DiagramCall(ToolCall):
    name = "diagram"
    task = TaskId.DIAGRAM_MERMAID
    schema = SchemaName.DIAGRAM
    expect = Expect.MERMAID


TOOL_TYPES: dict[str, type[ToolCall]] = {
    cls.name: cls
    for cls in (TopicMapCall, ChunkAssignCall, QuizCall, OverviewCall, DiagramCall)
}


def parse_tool_call(name: str, arguments: dict[str, Any]) -> ToolCall:
    """Turn an untyped (name, arguments) pair into a typed ToolCall."""
    try:
        cls = TOOL_TYPES[name]
    except KeyError:
        raise ValueError(f"Unknown tool '{name}'. Known tools: {', '.join(sorted(TOOL_TYPES))}") from None
    prompt = arguments.get("prompt")
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValueError(f"Tool '{name}' requires a non-empty 'prompt' argument")
    mode = arguments.get("mode")
    return cls(prompt=prompt, user_mode=Mode(mode) if mode else None)


async def run_tool(router: Router, call: ToolCall) -> CallResult:
    return await router.route(
        call.task,
        call.prompt,
        require_json=call.expect is Expect.JSON,
        schema=call.schema,
        user_mode=call.user_mode,
        expect=call.expect,
    )
