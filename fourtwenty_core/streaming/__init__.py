"""流式处理：SSE 帧解码与纯文本重发。"""
