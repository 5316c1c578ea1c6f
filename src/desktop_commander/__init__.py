"""Desktop Commander MCP - 终端会话管理 MCP 服务器。

环境变量:
    DCM_ENABLE / DCM_DISABLE: 启用/禁用的工具列表
    DCM_TIMEOUT_MS: desktop_cmd_run 默认超时（毫秒）
    DCM_CONFIG_FILE: 命令黑名单文件
    DCM_LOG_DEBUG: 日志输出到临时文件

用法:
    uvx desktop-commander-mcp
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
