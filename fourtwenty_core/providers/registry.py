"""Provider 与模型配置。

本模块将“逻辑模型名”与“具体厂商模型名”解耦：

- 逻辑名（logical_name）：代码里使用的统一名称，例如 "chat-text"。
- provider_model：厂商实际提供的模型 ID，例如 "gpt-3.5-turbo"。

对话里只要有一条消息带图片就走 "chat-vision"，否则走 "chat-text"。"""

from dataclasses import dataclass
from typing import Dict, Mapping


TEXT_MODEL = "chat-text"
VISION_MODEL = "chat-vision"


@dataclass
class ModelConfig:
    """单个逻辑模型的配置。"""

    logical_name: str
    provider_model: str
    max_tokens: int
    default_temperature: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    models: Dict[str, ModelConfig]


OPENAI_CONFIG = ProviderConfig(
    name="openai",
    base_url="https://api.openai.com/v1",
    models={
        TEXT_MODEL: ModelConfig(
            logical_name=TEXT_MODEL,
            provider_model="gpt-3.5-turbo",
            max_tokens=500,
            default_temperature=0.7,
        ),
        VISION_MODEL: ModelConfig(
            logical_name=VISION_MODEL,
            provider_model="gpt-4-vision-preview",
            max_tokens=500,
            default_temperature=0.7,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "openai": OPENAI_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def select_model(provider: ProviderConfig, has_images: bool) -> ModelConfig:
    """按是否含图片选择逻辑模型。"""

    return provider.models[VISION_MODEL if has_images else TEXT_MODEL]
