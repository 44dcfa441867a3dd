"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护 Provider 与模型配置 (registry)。
- 提供具体实现 (openai_client) 以及客户端使用的图床上传 (imgbb_client)。
"""

from typing import Optional

from fourtwenty_core.config.settings import Settings, settings
from fourtwenty_core.providers.base import ProviderClient
from fourtwenty_core.providers.openai_client import OpenAIClient
from fourtwenty_core.providers.registry import get_provider_config


def create_provider(name: str = "openai", cfg: Optional[Settings] = None) -> ProviderClient:
    """根据名称创建 Provider 实例。未知名称抛 KeyError。"""

    provider_cfg = get_provider_config(name)
    if provider_cfg.name == "openai":
        return OpenAIClient(cfg or settings)
    raise KeyError(f"No client for provider: {name!r}")
