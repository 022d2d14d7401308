import logging
import sys
from pathlib import Path

from loguru import logger as loguru_logger

from app.settings import Settings, get_settings

_LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <magenta>{extra[request_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """将标准 logging 的日志转发到 loguru。"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # 跳过 logging 模块自身的栈帧，保证 loguru 记录真实调用位置
        frame = logging.currentframe()
        depth = 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(settings: Settings | None = None):
    """安装 loguru sink，并把标准 logging（含 uvicorn/httpx）统一转发过去。"""

    settings = settings or get_settings()
    level = "DEBUG" if settings.debug else "INFO"

    # 输出到 stderr
    loguru_logger.remove()
    loguru_logger.configure(extra={"request_id": "-"})
    loguru_logger.add(sink=sys.stderr, level=level, format=_LOG_FORMAT)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    # httpx 在 INFO 级别会打印完整 URL（Gemini 的 key 在 query 里）
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if settings.log_to_file:
        file_path = Path(settings.log_file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        loguru_logger.add(
            sink=str(file_path),
            level=level,
            format=_LOG_FORMAT,
            rotation="100 MB",
            retention="10 days",
            enqueue=True,
            backtrace=False,
            diagnose=False,
        )

    return loguru_logger


logger = setup_logging()
