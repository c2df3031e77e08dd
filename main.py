"""Cardstream 流式记录服务入口"""
import asyncio
import uvicorn
import websockets

from cardstream.core import (
    ConfigError,
    build_streaming_config,
    load_config,
    PORT_API,
    PORT_WS
)
from cardstream.api import create_app
from cardstream.stream import get_stream_processor
from cardstream.websocket import (
    init_websocket_handler,
    websocket_handler
)


async def main():
    """启动服务器"""
    config = load_config()
    debug = config.get("debug", False)

    try:
        streaming_config = build_streaming_config(config)
    except ConfigError as e:
        print("❌ 流式配置无效:")
        for error in e.errors:
            print(f"   - {error}")
        return

    print(f"\n📋 流式参数: 分片 {streaming_config.min_chunk_size}-{streaming_config.max_chunk_size} 字符, "
          f"{streaming_config.tokens_per_second:g} tokens/s")

    processor = get_stream_processor(streaming_config)
    processor.enable_debug(debug)
    app = create_app(processor)

    tasks = []

    if config.get("enable_websocket", True):
        init_websocket_handler(streaming_config, debug=debug)
        ws_server = websockets.serve(websocket_handler, "0.0.0.0", PORT_WS)
        tasks.append(ws_server)

    uvicorn_config = uvicorn.Config(app, host="0.0.0.0", port=PORT_API, log_level="info")
    server = uvicorn.Server(uvicorn_config)

    print(f"\n🚀 流式服务器已启动")
    print(f"   - API: http://0.0.0.0:{PORT_API}")
    if config.get("enable_websocket", True):
        print(f"   - WS:  ws://0.0.0.0:{PORT_WS}")

    tasks.append(server.serve())
    await asyncio.gather(*tasks)


if __name__ == "__main__":
    asyncio.run(main())
