"""FastAPI路由模块"""

import asyncio
import json
import os
from fastapi import FastAPI, Request, HTTPException
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from pydantic import BaseModel, ValidationError
from typing import Dict, Any, List, Optional

from cardstream.stream import DONE_EVENT, SSEFormatter, StreamProcessor


class StreamRequest(BaseModel):
    payload: str
    instant: bool = False
    include_buffer: bool = True


class APIKeyAuthMiddleware(BaseHTTPMiddleware):
    """API 密钥验证中间件，未配置密钥时放行全部请求"""

    PUBLIC_PATHS = {"/", "/health"}

    def __init__(self, app, api_keys: List[str]):
        super().__init__(app)
        self.api_keys = set(api_keys)

    @staticmethod
    def _extract_key(request: Request) -> str:
        # Authorization 头可带或不带 Bearer 前缀
        auth_header = request.headers.get("Authorization", "").strip()
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() == "bearer" and token:
            return token.strip()
        return auth_header

    async def dispatch(self, request: Request, call_next):
        if not self.api_keys or request.url.path in self.PUBLIC_PATHS:
            return await call_next(request)

        if self._extract_key(request) not in self.api_keys:
            return JSONResponse(
                {"error": {"code": "UNAUTHORIZED", "message": "Invalid API key", "recoverable": False}},
                status_code=401,
            )

        return await call_next(request)


class ConnectionCompatibilityMiddleware(BaseHTTPMiddleware):
    """为非 SSE 响应补充 keep-alive，SSE 响应的头由路由自行设置"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Connection", "keep-alive")
        return response


def _load_api_keys() -> List[str]:
    """从环境变量读取 API 密钥（逗号分隔）"""
    api_keys_env = os.getenv("API_KEYS", "")
    if api_keys_env:
        api_keys = [key.strip() for key in api_keys_env.split(",") if key.strip()]
        print(f"🔐 API 密钥验证已启用 ({len(api_keys)} 个密钥)")
        return api_keys
    print("⚠️ API 密钥验证未启用（未设置 API_KEYS 环境变量）")
    return []


def _record_response(processor: StreamProcessor) -> Dict[str, Any]:
    record = processor.get_record()
    completion = {
        section_id: {"isComplete": c.is_complete, "percentage": c.percentage}
        for section_id, c in processor.get_completion().items()
    }
    return {
        "record": record.to_dict(include_state=True) if record else None,
        "completion": completion,
    }


def create_app(processor: Optional[StreamProcessor] = None) -> FastAPI:
    """创建FastAPI应用"""
    processor = processor or StreamProcessor()
    app = FastAPI()
    app.state.processor = processor

    app.add_middleware(APIKeyAuthMiddleware, api_keys=_load_api_keys())
    app.add_middleware(ConnectionCompatibilityMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["*"],
    )

    @app.get("/health")
    async def health():
        state = processor.get_state()
        return {"status": "ok", "stage": state.stage.value, "isActive": state.is_active}

    @app.get("/v1/stream/state")
    async def get_state():
        data = processor.get_state().to_dict()
        data["lastError"] = processor.last_error.to_dict() if processor.last_error else None
        return data

    @app.get("/v1/stream/record")
    async def get_record():
        return _record_response(processor)

    @app.get("/v1/stream/preview")
    async def get_preview():
        return {"preview": processor.get_preview()}

    @app.get("/v1/stream/stats")
    async def get_stats():
        return processor.get_stats()

    @app.post("/v1/stream/stop")
    async def stop_stream():
        stopped = processor.stop()
        return {"stopped": stopped, "state": processor.get_state().to_dict()}

    @app.post("/v1/stream")
    async def start_stream(request: Request):
        """开始流式会话，以SSE推送状态、缓冲区与记录更新"""
        try:
            body = await request.json()
        except (json.JSONDecodeError, ValueError):
            raise HTTPException(status_code=400, detail={"error": "request body must be JSON"})

        try:
            stream_request = StreamRequest.model_validate(body)
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise HTTPException(status_code=400, detail={"error": "invalid stream request", "fields": fields})

        events = processor.open_event_stream(include_buffer=stream_request.include_buffer)
        session_id = processor.start(stream_request.payload, instant=stream_request.instant)
        formatter = SSEFormatter(session_id)

        async def stream_with_disconnect_check():
            """包装流式响应，添加客户端断开检测"""
            try:
                async for kind, event in events:
                    if processor.session_id not in (None, session_id):
                        print("⚠️ 会话已被新的请求取代，结束响应")
                        break
                    if await request.is_disconnected():
                        print("⚠️ 客户端断开，终止流式会话")
                        processor.stop()
                        break
                    yield formatter.format_event(kind, event)
                yield DONE_EVENT
            except asyncio.CancelledError:
                print("⚠️ 响应已取消")
                if processor.session_id == session_id:
                    processor.stop()
                raise
            finally:
                events.close()

        sse_headers = {
            "Cache-Control": "no-cache, no-store, must-revalidate, max-age=0",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # 禁用 nginx 缓冲
            "X-Session-Id": session_id,
        }

        return StreamingResponse(
            stream_with_disconnect_check(),
            media_type="text/event-stream",
            headers=sse_headers
        )

    return app
