"""Desktop Commander MCP 入口点。

支持: python -m desktop_commander
"""

from .app import main

if __name__ == "__main__":
    main()
