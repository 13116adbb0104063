"""
应用配置
从环境变量读取配置，支持独立部署 (silo) 与平台托管 (hub) 两种租户模式
"""
from typing import List, Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """应用设置"""

    # 应用基础配置
    APP_NAME: str = "Hotel Module"
    DEBUG: bool = False

    # 数据库配置
    DATABASE_URL: str = "sqlite:///./hotel.db"

    # 调用方身份令牌 (由平台认证服务签发，本模块只负责校验)
    SECRET_KEY: str = "hotel-module-secret-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_HOURS: int = 24

    # 租户配置
    # 设置 APP_TENANT_ID 时为独立部署模式，忽略 x-tenant-id 请求头
    APP_TENANT_ID: Optional[str] = None
    # 已订阅模块，逗号分隔；为空表示全部启用
    APP_SUBSCRIBED_MODULES: str = ""
    HOTEL_MODULE_SLUG: str = "hotel"

    # 退房自动清洁任务
    CHECKOUT_TASK_TYPE: str = "Checkout Clean"
    CHECKOUT_TASK_PRIORITY: str = "Medium"

    # 报表
    REPORT_TREND_DAYS: int = 7
    REPORT_TREND_MAX_DAYS: int = 90

    # 事件历史保留条数
    EVENT_HISTORY_SIZE: int = 200

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @property
    def subscribed_modules(self) -> List[str]:
        return [
            m.strip().lower()
            for m in self.APP_SUBSCRIBED_MODULES.split(",")
            if m.strip()
        ]


# 全局设置实例
settings = Settings()
