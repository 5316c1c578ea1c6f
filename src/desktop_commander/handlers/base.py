"""Tool Handler 基础抽象。

定义工具处理器的协议和上下文。
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar

import anyio
from mcp.types import TextContent
from pydantic import BaseModel, ValidationError

from ..response_formatter import format_error_response
from ..tool_schema import TOOL_ARGS, TOOL_DESCRIPTIONS, create_tool_schema

if TYPE_CHECKING:
    from ..command_manager import CommandManager
    from ..config import Config
    from ..filesystem import FileSystemManager
    from ..runtime import TerminalManager

__all__ = [
    "ToolContext",
    "ToolHandler",
]

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """工具执行上下文。

    封装工具执行所需的所有依赖。TerminalManager 由组合根创建并在此传入，
    所有请求共享同一个实例。
    """

    config: "Config"
    terminal_manager: "TerminalManager"
    command_manager: "CommandManager"
    filesystem: "FileSystemManager"


class ToolHandler(ABC):
    """工具处理器基类。

    子类设置 tool_name 并实现 execute()；参数校验和错误包装在 handle() 中统一完成。
    """

    tool_name: ClassVar[str]
    # 错误消息中的动作描述，如 "executing command"
    action: ClassVar[str] = ""

    @property
    def name(self) -> str:
        """工具名称。"""
        return self.tool_name

    @property
    def description(self) -> str:
        """工具描述。"""
        return TOOL_DESCRIPTIONS[self.tool_name]

    def get_input_schema(self) -> dict[str, Any]:
        """获取输入参数 schema。"""
        return create_tool_schema(self.tool_name)

    def parse(self, arguments: dict[str, Any] | None) -> BaseModel:
        """用 pydantic 模型校验参数。

        Raises:
            ValidationError: 参数无效
        """
        return TOOL_ARGS[self.tool_name].model_validate(arguments or {})

    async def handle(
        self,
        arguments: dict[str, Any] | None,
        ctx: ToolContext,
    ) -> list[TextContent]:
        """处理工具调用。

        Args:
            arguments: 工具参数
            ctx: 执行上下文

        Returns:
            TextContent 列表
        """
        try:
            args = self.parse(arguments)
        except ValidationError as e:
            return format_error_response(
                f"Invalid arguments for {self.tool_name}: {e}"
            )

        try:
            return await self.execute(args, ctx)
        except (anyio.get_cancelled_exc_class(), asyncio.CancelledError):
            logger.info(f"Tool '{self.tool_name}' cancelled")
            raise
        except Exception as e:
            logger.error(f"Tool '{self.tool_name}' error: {e}", exc_info=True)
            return format_error_response(str(e), self.action)

    @abstractmethod
    async def execute(self, args: Any, ctx: ToolContext) -> list[TextContent]:
        """执行已校验参数的工具调用。"""
        ...
