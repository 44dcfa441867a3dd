"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
进程启动时只构造一次 `settings`，由 api.service 显式注入到各组件。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# .env.example 里的占位值，视同未配置
PLACEHOLDER_API_KEYS = frozenset({"your-openai-api-key"})


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("FOURTWENTY_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """应用配置（使用 Pydantic）。"""

    # ---- LLM Provider ----
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API 密钥")
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="OpenAI 兼容接口的基础URL",
    )

    # ---- 图床（客户端上传附件用）----
    imgbb_api_key: Optional[str] = Field(default=None, description="ImgBB API 密钥")
    imgbb_upload_url: str = Field(
        default="https://api.imgbb.com/1/upload",
        description="ImgBB 上传接口",
    )

    # ---- 客户端 ----
    relay_url: str = Field(
        default="http://127.0.0.1:8000/api/chat",
        description="桌面客户端请求的中继地址",
    )

    # ---- 服务端 ----
    server_host: str = Field(default="127.0.0.1", description="uvicorn 监听地址")
    server_port: int = Field(default=8000, ge=1, le=65535, description="uvicorn 监听端口")

    http_timeout: float = Field(default=60.0, ge=1.0, description="HTTP 超时时间（秒）")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("openai_api_key", "imgbb_api_key")
    @classmethod
    def normalize_api_key(cls, v: Optional[str]) -> Optional[str]:
        # 空字符串与占位值统一视为未配置，交给调用方抛 ConfigurationError
        if v is None:
            return None
        v = v.strip()
        if not v or v in PLACEHOLDER_API_KEYS:
            return None
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
