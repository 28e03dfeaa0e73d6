"""
客户端配置 - 与服务端相同采用 pydantic-settings，环境变量前缀 SHOPLIST_CLIENT_
"""
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ClientSettings(BaseSettings):
    """客户端配置"""

    base_url: str = Field(default="http://localhost:8000", description="服务地址（不含 /api/v1）")
    api_prefix: str = "/api/v1"
    timeout: float = Field(default=30.0, description="普通请求超时（秒）")
    max_retries: int = Field(default=3, description="只读请求的最大重试次数；修改类请求从不重试")
    retry_delay: float = 1.0
    token: Optional[str] = None

    # 实时订阅
    max_reconnect_attempts: int = Field(default=5, ge=0)
    reconnect_base_delay: float = Field(default=1.0, gt=0, description="重连退避基数：base * 2**attempts")
    retry_auth_failures: bool = Field(
        default=True,
        description="401/403 是否与网络错误一样进入重连；False 时直接断开",
    )

    model_config = SettingsConfigDict(
        env_prefix="SHOPLIST_CLIENT_",
        env_file=".env",
        extra="ignore",
    )
