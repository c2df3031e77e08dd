"""
核心常量定义模块

包含API端口、配置文件路径、流式模拟默认参数等全局常量。
"""

# API和WebSocket服务端口
PORT_API = 7860
PORT_WS = 7861

# 配置文件路径
CONFIG_FILE = "config/config.json"

# 流式模拟默认参数 (时间单位: 秒)
DEFAULT_MIN_CHUNK_SIZE = 10
DEFAULT_MAX_CHUNK_SIZE = 50
DEFAULT_THINKING_DELAY = 0.1
DEFAULT_CHARS_PER_TOKEN = 4.0
DEFAULT_TOKENS_PER_SECOND = 80.0
DEFAULT_UPDATE_THROTTLE = 0.05
DEFAULT_FINAL_DELAY = 0.1
DEFAULT_STREAM_TIMEOUT = 60.0

# 完成度判定
DEFAULT_PLACEHOLDER_VALUE = "..."
DEFAULT_PROGRESS_UPDATE_THRESHOLD = 0.1

# 文档键名
DEFAULT_TITLE_KEY = "title"
DEFAULT_SECTIONS_KEY = "sections"

# 分块边界字符
CHUNK_BOUNDARY_CHARS = "\n,}]"
