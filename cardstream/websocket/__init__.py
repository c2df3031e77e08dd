"""
websocket - WebSocket 通信模块

为浏览器客户端提供流式会话的双向通道。

主要组件:
- connected_clients: 存储连接的客户端集合
- websocket_handler: WebSocket 连接处理函数
- init_websocket_handler: 初始化函数（设置流式参数）
"""

from .handler import (
    connected_clients,
    event_payload,
    websocket_handler,
    init_websocket_handler
)

__all__ = [
    "connected_clients",
    "event_payload",
    "websocket_handler",
    "init_websocket_handler"
]
