"""截止时间计算 -- 紧急度 + 参考时刻 -> 绝对截止时刻

所有营业时间运算在配置的业务时区内进行，而非主机本地时区。
本地墙钟时间通过参考时刻在业务时区下的 UTC 偏移换算，
并以该固定偏移换算回 UTC：参考时刻与结果之间跨越夏令时切换的情况不做处理。
"""

from datetime import UTC, datetime, timedelta

from .config import ORANGE_DUE_MINUTES, AppConfig
from .models.enums import UrgencyLevel

# datetime.weekday(): 周六=5，周日=6
_SATURDAY = 5


def _require_aware(now: datetime) -> None:
    if now.tzinfo is None or now.utcoffset() is None:
        raise ValueError("reference instant must be timezone-aware")


def _offset_for(now: datetime, config: AppConfig) -> timedelta:
    """参考时刻在业务时区下的 UTC 偏移"""
    offset = now.astimezone(config.zone).utcoffset()
    return offset if offset is not None else timedelta(0)


def _to_local(now: datetime, offset: timedelta) -> datetime:
    """UTC 时刻 -> 业务时区墙钟时间（naive）"""
    return (now.astimezone(UTC) + offset).replace(tzinfo=None)


def _from_local(local: datetime, offset: timedelta) -> datetime:
    """业务时区墙钟时间（naive） -> UTC 时刻"""
    return (local - offset).replace(tzinfo=UTC)


def _is_weekend(local: datetime) -> bool:
    return local.weekday() >= _SATURDAY


def _close_of(local: datetime, config: AppConfig) -> datetime:
    return local.replace(
        hour=config.business_end_hour,
        minute=config.business_end_minute,
        second=0,
        microsecond=0,
    )


def _next_weekday_close(local: datetime, config: AppConfig) -> datetime:
    """下一个工作日（从明天起，跳过周末）的营业结束时刻"""
    day = local + timedelta(days=1)
    while _is_weekend(day):
        day += timedelta(days=1)
    return _close_of(day, config)


def compute_due_at(urgency: UrgencyLevel, now: datetime, config: AppConfig) -> datetime:
    """根据紧急度计算截止时刻

    - RED: 立即到期（now）
    - ORANGE: now + 60 分钟，与时区无关
    - YELLOW: 若 now 为工作日且不晚于当天营业结束，则为当天营业结束；
      否则为下一个工作日的营业结束
    - GREEN: 下一个工作日的营业结束（至少一个完整工作日之后）

    Args:
        urgency: 紧急度
        now: 参考时刻（必须带时区）
        config: 业务规则配置

    Returns:
        UTC 截止时刻

    Raises:
        ValueError: now 不带时区信息
    """
    _require_aware(now)
    now_utc = now.astimezone(UTC)

    if urgency == UrgencyLevel.RED:
        return now_utc

    if urgency == UrgencyLevel.ORANGE:
        return now_utc + timedelta(minutes=ORANGE_DUE_MINUTES)

    offset = _offset_for(now_utc, config)
    local = _to_local(now_utc, offset)

    if urgency == UrgencyLevel.YELLOW:
        close = _close_of(local, config)
        # 恰好等于营业结束也算当天
        if not _is_weekend(local) and local <= close:
            return _from_local(close, offset)
        return _from_local(_next_weekday_close(local, config), offset)

    return _from_local(_next_weekday_close(local, config), offset)


def is_within_business_hours(now: datetime, config: AppConfig) -> bool:
    """判断时刻是否落在营业时间内（工作日，首尾均包含）"""
    _require_aware(now)
    local = _to_local(now, _offset_for(now, config))
    if _is_weekend(local):
        return False

    minutes = local.hour * 60 + local.minute
    return config.business_start_minutes <= minutes <= config.business_end_minutes
