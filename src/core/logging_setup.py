import logging
import sys
import os
from logging.handlers import TimedRotatingFileHandler
from pythonjsonlogger import jsonlogger

from src.core.utils import get_int_env

def setup_logging(log_dir: str = 'logs'):
    """
    配置日志系统：控制台输出可读文本，文件输出 JSON（包含 extra 中的结构化字段）。
    已有处理器时直接返回，避免重复添加。
    """
    root_logger = logging.getLogger()

    if root_logger.hasHandlers():
        return

    log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_level = getattr(logging, log_level_str, logging.INFO)

    # 根 logger 捕获所有级别，由处理器进行过滤
    root_logger.setLevel(logging.DEBUG)

    console_formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    json_formatter = jsonlogger.JsonFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        rename_fields={
            'asctime': 'timestamp',
            'levelname': 'level',
            'name': 'logger'
        },
        json_ensure_ascii=False
    )

    os.makedirs(log_dir, exist_ok=True)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    file_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, 'bot.log'),
        when='midnight',
        interval=get_int_env('LOG_ROTATION_INTERVAL_DAYS', 1),
        backupCount=get_int_env('LOG_BACKUP_COUNT', 7),
        encoding='utf-8'
    )
    file_handler.setFormatter(json_formatter)
    file_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)

    # 第三方库的日志只保留警告及以上
    for noisy_logger in ('discord', 'discord.http', 'uvicorn', 'uvicorn.error', 'httpx', 'aiosqlite'):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    root_logger.info("日志系统初始化完成 (控制台: text, 文件: json)")
