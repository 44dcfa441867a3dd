import threading
import tkinter as tk
from tkinter import filedialog, scrolledtext

from fourtwenty_core.client.chat_session import ChatSession, SessionState
from fourtwenty_core.domain.models import ConversationMessage


ROLE_LABELS = {"user": "You", "assistant": "420 Assistant", "system": "System"}


class App:
    def __init__(self, root, session: ChatSession | None = None):
        self.root = root
        self.root.title("420 Assistant")
        self.session = session or ChatSession()
        self.session.on_update = self.schedule_render
        self.attachments: list[str] = []
        self.chat = scrolledtext.ScrolledText(root, width=80, height=24, wrap=tk.WORD)
        self.chat.pack(fill=tk.BOTH, expand=True)
        self.chat.tag_config("user", foreground="#1a73e8")
        self.chat.tag_config("assistant", foreground="#34a853")
        self.chat.tag_config("system", foreground="#5f6368")
        row = tk.Frame(root)
        row.pack(fill=tk.X)
        self.entry = tk.Entry(row)
        self.entry.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.entry.bind("<Return>", self.on_send_event)
        tk.Button(row, text="Attach", command=self.on_attach).pack(side=tk.LEFT)
        self.send_btn = tk.Button(row, text="Send", command=self.on_send)
        self.send_btn.pack(side=tk.LEFT)
        self.status = tk.Label(root, text="Ask about munchies, events, or upload an image for analysis.")
        self.status.pack(fill=tk.X)
        self.root.protocol("WM_DELETE_WINDOW", self.on_close)

    def on_attach(self):
        paths = filedialog.askopenfilenames(filetypes=[("Images", "*.png *.jpg *.jpeg *.gif *.webp")])
        if not paths:
            return
        self.attachments.extend(paths)
        self.status.config(text=f"{len(self.attachments)} image(s) attached")

    def on_send(self):
        if self.session.state is SessionState.STREAMING:
            return
        text = self.entry.get().strip()
        attachments = list(self.attachments)
        if not text and not attachments:
            return
        self.entry.delete(0, tk.END)
        self.attachments = []
        self.send_btn.config(state=tk.DISABLED)
        self.status.config(text="Thinking...")

        def worker():
            try:
                self.session.submit(text, attachments)
            finally:
                self.root.after(0, self.on_settled)

        threading.Thread(target=worker, daemon=True).start()

    def on_send_event(self, event):
        self.on_send()
        return "break"

    def on_settled(self):
        self.send_btn.config(state=tk.NORMAL)
        self.status.config(text="Ready")

    def schedule_render(self, messages: list[ConversationMessage]):
        # 在工作线程里被调用，先拷贝快照再切回 Tk 主线程
        snapshot = [(m.role, m.content, len(m.image_urls)) for m in messages]
        self.root.after(0, lambda: self.render(snapshot))

    def render(self, snapshot):
        self.chat.delete(1.0, tk.END)
        for role, content, image_count in snapshot:
            label = ROLE_LABELS.get(role, role)
            images = f" [{image_count} image(s)]" if image_count else ""
            self.chat.insert(tk.END, f"{label}{images}: {content}\n\n", role)
        self.chat.see(tk.END)

    def on_close(self):
        self.session.close()
        self.root.destroy()


def main():
    root = tk.Tk()
    App(root)
    root.mainloop()


if __name__ == "__main__":
    main()
