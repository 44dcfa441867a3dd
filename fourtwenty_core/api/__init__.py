"""对外 HTTP 服务：FastAPI 中继应用与进程级装配。"""
