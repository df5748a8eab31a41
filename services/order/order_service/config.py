"""
Order Service / 設定

環境変数はプロセス起動時に Settings.from_env() で一度だけ読む。
それ以外のモジュールは環境変数を直接参照せず、
Settings をコンストラクタ引数として受け取る。
"""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field


class Settings(BaseModel):
    database_url: str
    warehouse_service_url: str
    internal_auth_header: str
    auth_payment_header: str
    jwt_secret_key: str
    redis_url: str = "redis://localhost:6379"
    reservation_ttl_minutes: int = Field(default=15, gt=0)
    gateway_timeout_seconds: float = Field(default=30.0, gt=0)
    expiry_sweep_interval_seconds: float = Field(default=60.0, ge=0)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ

        def required(name: str) -> str:
            value = env.get(name)
            if not value:
                raise ValueError(f"environment variable {name} is required")
            return value

        optional = {
            "redis_url": env.get("REDIS_URL"),
            "reservation_ttl_minutes": env.get("RESERVATION_TTL_MINUTES"),
            "gateway_timeout_seconds": env.get("GATEWAY_TIMEOUT_SECONDS"),
            "expiry_sweep_interval_seconds": env.get("EXPIRY_SWEEP_INTERVAL_SECONDS"),
            "log_level": env.get("LOG_LEVEL"),
        }
        return cls(
            database_url=required("DATABASE_URL"),
            warehouse_service_url=required("WAREHOUSE_SERVICE_URL"),
            internal_auth_header=required("INTERNAL_AUTH_HEADER"),
            auth_payment_header=required("AUTH_PAYMENT_HEADER"),
            jwt_secret_key=required("JWT_SECRET_KEY"),
            **{k: v for k, v in optional.items() if v is not None},
        )
