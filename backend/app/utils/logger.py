"""
日志配置模块
使用 loguru 提供结构化日志
"""
import os
import sys
from loguru import logger
from typing import Optional


def setup_logger(
    log_level: str = 'INFO',
    log_file: Optional[str] = None,
    rotation: str = '10 MB',
    retention: str = '7 days'
) -> None:
    """
    配置日志系统

    Args:
        log_level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        log_file: 日志文件路径（可选）
        rotation: 日志轮转大小
        retention: 日志保留时间
    """
    # 移除默认处理器
    logger.remove()

    # 从环境变量获取日志级别
    level = os.environ.get('LOG_LEVEL', log_level).upper()

    # 控制台输出格式
    console_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    logger.configure(extra={'name': 'app'})

    logger.add(
        sys.stderr,
        format=console_format,
        level=level,
        colorize=True,
        backtrace=True,
        # diagnose 会打印局部变量，其中可能包含凭证
        diagnose=False,
    )

    # 如果指定了日志文件，添加文件处理器
    if log_file:
        file_format = (
            "{time:YYYY-MM-DD HH:mm:ss} | "
            "{level: <8} | "
            "{extra[name]}:{function}:{line} | "
            "{message}"
        )
        logger.add(
            log_file,
            format=file_format,
            level=level,
            rotation=rotation,
            retention=retention,
            compression='zip',
            encoding='utf-8',
            diagnose=False,
        )

    logger.info(f"Logger initialized with level: {level}")


def get_logger(name: str = None):
    """
    获取日志器实例

    Args:
        name: 日志器名称

    Returns:
        logger 实例
    """
    if name:
        return logger.bind(name=name)
    return logger


# 便捷的日志函数
def log_sync_event(account_id: int, event: str, details: dict = None):
    """记录同步事件"""
    msg = f"Sync Event: account={account_id}, event={event}"
    if details:
        msg += f", details={details}"
    logger.bind(name='sync').info(msg)


def log_queue_event(item_id: int, event: str, details: dict = None):
    """记录同步队列事件"""
    msg = f"Queue Event: item={item_id}, event={event}"
    if details:
        msg += f", details={details}"
    logger.bind(name='sync_queue').info(msg)
