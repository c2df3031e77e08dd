"""
流式服务客户端

通过 httpx 调用 /v1/stream 并逐个解析 SSE 事件，供脚本和其他服务消费渐进式记录。
"""

import json
import httpx
from typing import Dict, Any, AsyncGenerator, AsyncIterator, List, Optional, Tuple

from cardstream.core.constants import PORT_API

SSEEvent = Tuple[str, Dict[str, Any]]


class StreamClientError(Exception):
    """服务端返回非200响应"""

    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


async def parse_sse_lines(lines: AsyncIterator[str]) -> AsyncGenerator[SSEEvent, None]:
    """
    解析 text/event-stream 行

    产出 (event_type, data)，未指定 event 时类型为 "message"。
    遇到 data: [DONE] 结束，注释行（以冒号开头）被忽略。
    """
    event_type = "message"
    data_lines: List[str] = []

    async for line in lines:
        line = line.rstrip("\r")

        if not line:
            if data_lines:
                data = "\n".join(data_lines)
                if data == "[DONE]":
                    return
                yield event_type, json.loads(data)
            event_type = "message"
            data_lines = []
            continue

        if line.startswith(":"):
            continue

        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event_type = value
        elif name == "data":
            if value == "[DONE]":
                return
            data_lines.append(value)

    if data_lines:
        yield event_type, json.loads("\n".join(data_lines))


class StreamClient:
    """异步流式客户端"""

    def __init__(
        self,
        base_url: str = f"http://127.0.0.1:{PORT_API}",
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        limits = httpx.Limits(
            max_keepalive_connections=5,
            max_connections=10,
            keepalive_expiry=60.0
        )
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(connect=10.0, read=120.0, write=10.0, pool=10.0),
            limits=limits,
            transport=transport,
        )

    async def _get_json(self, method: str, path: str) -> Dict[str, Any]:
        response = await self.client.request(method, path)
        if response.status_code != 200:
            raise StreamClientError(response.status_code, response.text)
        return response.json()

    async def stream(
        self,
        payload: str,
        instant: bool = False,
        include_buffer: bool = False,
    ) -> AsyncGenerator[SSEEvent, None]:
        """开始流式会话并逐个产出事件"""
        body = {"payload": payload, "instant": instant, "include_buffer": include_buffer}
        async with self.client.stream("POST", "/v1/stream", json=body) as response:
            if response.status_code != 200:
                error_text = await response.aread()
                print(f"✗ 流式请求失败: {response.status_code}")
                raise StreamClientError(response.status_code, error_text.decode("utf-8", errors="replace"))

            async for event in parse_sse_lines(response.aiter_lines()):
                yield event

    async def collect(self, payload: str, instant: bool = False) -> Dict[str, Any]:
        """消费整个流，返回最后的状态与记录"""
        final: Dict[str, Any] = {"state": None, "record": None, "updates": 0}
        async for event_type, data in self.stream(payload, instant=instant):
            if event_type == "state":
                final["state"] = data
            elif event_type == "update":
                final["record"] = data.get("record")
                final["updates"] += 1
        return final

    async def get_state(self) -> Dict[str, Any]:
        return await self._get_json("GET", "/v1/stream/state")

    async def get_record(self) -> Dict[str, Any]:
        return await self._get_json("GET", "/v1/stream/record")

    async def stop(self) -> Dict[str, Any]:
        return await self._get_json("POST", "/v1/stream/stop")

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
