import threading
from datetime import datetime
from typing import Callable, List, Optional


class LogBuffer:
    """Rolling, thread-safe log text shared by every surface"""

    def __init__(self, max_size: int = 50000, clock: Optional[Callable] = None):
        self._output = ""
        self._max_size = max_size
        self._lock = threading.Lock()
        self._listeners: List[Callable[[str], None]] = []
        self._clock = clock or datetime.now

    def append(self, text):
        with self._lock:
            self._output += text
            # Keep only the most recent max_size characters
            if len(self._output) > self._max_size:
                self._output = self._output[-self._max_size :]
            listeners = list(self._listeners)
        for listener in listeners:
            listener(text)

    def add_line(self, message: str):
        """Append one timestamped line"""
        timestamp = self._clock().strftime("%H:%M:%S")
        self.append(f"[{timestamp}] {message.rstrip()}\n")

    def add_listener(self, listener: Callable[[str], None]):
        with self._lock:
            self._listeners.append(listener)

    def get(self):
        with self._lock:
            return self._output

    def clear(self):
        with self._lock:
            self._output = ""
