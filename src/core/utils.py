# src/core/utils.py
import asyncio
import logging
import os
import discord
from typing import Coroutine, Any, TypeVar, Callable

logger = logging.getLogger(__name__)

T = TypeVar('T')

def get_int_env(name: str, default: int) -> int:
    """读取整数类型的环境变量，缺失或格式错误时返回默认值。"""
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning(f"环境变量 {name} 的值 '{raw}' 不是有效整数，使用默认值 {default}。")
        return default

async def retry_on_discord_error(
    coro_func: Callable[[], Coroutine[Any, Any, T]],
    operation_name: str,
    max_retries: int = 3,
    initial_delay: float = 2.0,
    backoff_factor: float = 2.0
) -> T:
    """
    当发生 DiscordServerError (5xx) 时，使用指数退避策略重试一个协程。
    只应用于幂等操作（获取、编辑消息），发送新消息不要经过这里，否则可能产生重复消息。

    :param coro_func: 一个返回需要执行的协程的函数 (例如: lambda: channel.fetch_message(id))
    :param operation_name: 操作的描述性名称，用于日志记录
    :param max_retries: 最大尝试次数
    :param initial_delay: 初始延迟秒数
    :param backoff_factor: 每次重试后延迟时间增加的倍数
    :return: 如果成功，返回协程的结果
    :raises: 如果所有重试都失败，则抛出最后一个异常
    """
    delay = initial_delay
    logger.debug(f"开始执行操作: '{operation_name}'，最多尝试 {max_retries} 次。")

    for i in range(max_retries):
        try:
            result = await coro_func()
            logger.debug(f"操作 '{operation_name}' 成功。")
            return result
        except discord.errors.DiscordServerError as e:
            if i == max_retries - 1:
                logger.error(
                    f"操作 '{operation_name}' 在 {max_retries} 次尝试后最终失败。最后一次错误: {e}",
                    exc_info=True
                )
                raise

            logger.warning(
                f"操作 '{operation_name}' 失败 (尝试 {i + 1}/{max_retries})，状态码: {e.status}。将在 {delay:.2f} 秒后重试..."
            )
            await asyncio.sleep(delay)
            delay *= backoff_factor

    raise RuntimeError(f"操作 '{operation_name}' 的重试逻辑出现意外错误。")
