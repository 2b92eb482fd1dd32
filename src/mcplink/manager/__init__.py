"""Connection manager — supervise a set of subprocess servers."""

from mcplink.manager.config import MCPConfig, ServerConfig, load_config, parse_config
from mcplink.manager.connection_manager import ConnectionManager, ConnectionRecord, InitializeReport
from mcplink.manager.process import ProcessState, ServerProcess

__all__ = [
    "ConnectionManager",
    "ConnectionRecord",
    "InitializeReport",
    "MCPConfig",
    "ProcessState",
    "ServerConfig",
    "ServerProcess",
    "load_config",
    "parse_config",
]
