"""tkinter 桌面聊天窗口。"""
