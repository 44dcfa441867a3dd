"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取 420 Assistant 的 system prompt，
用于构造 role="system" 的首条消息。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_system_prompt(locale: str = "en") -> str:
    """加载系统提示词文本（去掉首尾空白）。"""

    fname = PROMPTS_DIR / locale / "assistant_system.md"
    return fname.read_text(encoding="utf-8").strip()
