"""fourtwenty_core 顶层包。

该包提供 420.nyc 聊天助手的核心实现：
配置加载、领域模型、Provider 适配、SSE 解码与纯文本中继、
FastAPI 服务以及带增量渲染的桌面客户端。
"""
