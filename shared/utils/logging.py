import logging

from rich.console import Console
from rich.logging import RichHandler

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"


def setup_logger(name: str = "rsi-runner", level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)
    if not logger.handlers:
        # 控制台 handler
        ch = logging.StreamHandler()
        ch.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(ch)
    return logger


def configure_logging(level: str | int = "INFO") -> None:
    """CLI 入口调用一次：根 logger 走 rich 渲染。"""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(name)s - %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False, markup=False)],
        force=True,
    )
    # websockets 自身的 DEBUG 很吵
    logging.getLogger("websockets").setLevel(logging.WARNING)
