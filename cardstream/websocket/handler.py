"""
WebSocket 处理模块

每个连接拥有独立的流处理器：
- start: 开始流式会话（payload, instant, include_buffer）
- stop: 中止当前会话
- state: 查询当前状态
- identify: 客户端身份标识，回复 hello 握手
"""

import asyncio
import json
import time
import websockets
from typing import Set, Optional, Any, Dict

from cardstream.core.config import StreamingConfig
from cardstream.stream import EventStream, RecordUpdate, StreamProcessor, StreamState

# 模块级变量
_streaming_config: Optional[StreamingConfig] = None
_debug = False

# 存储已连接的客户端
connected_clients: Set = set()


def init_websocket_handler(config: Optional[StreamingConfig] = None, debug: bool = False) -> None:
    """
    初始化 WebSocket 处理器

    Args:
        config: 每个连接的处理器使用的流式参数
        debug: 是否为连接的处理器启用调试日志
    """
    global _streaming_config, _debug
    _streaming_config = config
    _debug = debug
    print("✅ WebSocket 处理器已初始化")


def event_payload(kind: str, event: Any) -> Dict[str, Any]:
    """将引擎事件转换为可序列化的消息体"""
    if isinstance(event, StreamState):
        return event.to_dict()
    if isinstance(event, RecordUpdate):
        return event.to_dict(include_state=True)
    if kind == "buffer":
        return {"buffer": event, "length": len(event)}
    return {"value": event}


async def _send(websocket, msg_type: str, data: Dict[str, Any]) -> None:
    await websocket.send(json.dumps({"type": msg_type, "data": data}, ensure_ascii=False))


async def _forward_events(websocket, events: EventStream) -> None:
    """将事件流转发给客户端，直到会话进入终止阶段"""
    try:
        async for kind, event in events:
            await _send(websocket, kind, event_payload(kind, event))
    finally:
        events.close()


async def websocket_handler(websocket) -> None:
    """
    处理 WebSocket 连接

    Args:
        websocket: WebSocket 连接对象
    """
    print("🔌 WebSocket 客户端已连接")
    connected_clients.add(websocket)

    processor = StreamProcessor(_streaming_config)
    processor.enable_debug(_debug)
    forward_task: Optional[asyncio.Task] = None

    try:
        async for message in websocket:
            try:
                data = json.loads(message)
                msg_type = data.get("type")

                if msg_type == "start":
                    payload = data.get("payload")
                    if not isinstance(payload, str):
                        await _send(websocket, "error", {"message": "payload is required"})
                        continue

                    if forward_task is not None:
                        forward_task.cancel()
                    events = processor.open_event_stream(include_buffer=bool(data.get("include_buffer", False)))
                    forward_task = asyncio.create_task(_forward_events(websocket, events))
                    processor.start(payload, instant=bool(data.get("instant", False)))

                elif msg_type == "stop":
                    if not processor.stop():
                        await _send(websocket, "state", processor.get_state().to_dict())

                elif msg_type == "state":
                    await _send(websocket, "state", processor.get_state().to_dict())

                elif msg_type == "identify":
                    client_id = data.get('client')
                    print(f"👋 客户端已识别: {client_id}")
                    # 发送握手确认
                    await websocket.send(json.dumps({
                        "type": "hello",
                        "message": "Connection established",
                        "server_time": time.time()
                    }))

                else:
                    print(f"⚠️ 未知消息类型: {msg_type}")
                    await _send(websocket, "error", {"message": f"unknown message type: {msg_type}"})

            except websockets.ConnectionClosed:
                raise
            except Exception as e:
                print(f"⚠️ WS 错误: {e}")

    except websockets.ConnectionClosed:
        print("🔌 WebSocket 客户端已断开")

    except Exception as e:
        print(f"⚠️ WS 处理器错误: {e}")

    finally:
        processor.stop()
        if forward_task is not None:
            forward_task.cancel()
            await asyncio.gather(forward_task, return_exceptions=True)
        connected_clients.discard(websocket)
