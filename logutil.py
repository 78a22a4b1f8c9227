import os
import threading
import multiprocessing
import contextlib
import config

_local = threading.local()


@contextlib.contextmanager
def chunk_tag(chunk_x, chunk_z):
    """Tag every log line emitted by this thread with the chunk being built."""
    prev = getattr(_local, 'chunk', None)
    _local.chunk = (chunk_x, chunk_z)
    try:
        yield
    finally:
        _local.chunk = prev


def current_chunk():
    return getattr(_local, 'chunk', None)


def log(scope, msg, level="INFO"):
    if scope == "INTERP" and level == "INFO" and not getattr(config, "LOG_INTERP", False):
        return
    if getattr(config, "LOG_STRICT_ONLY", False) and level not in ("WARN", "ERROR"):
        return
    pid = os.getpid()
    proc = multiprocessing.current_process().name
    thread = threading.current_thread().name
    chunk = current_chunk()
    chunk_text = f" c{chunk[0]},{chunk[1]}" if chunk is not None else ""
    text = f"[{level}{chunk_text} pid{pid} proc{proc} thr{thread} {scope}] {msg}"
    use_color = getattr(config, "LOG_COLOR", True) and os.getenv("NO_COLOR") is None
    if use_color:
        if level == "ERROR":
            text = f"\x1b[31m{text}\x1b[0m"
        elif proc == "MainProcess" and thread != "MainThread":
            # Main process worker thread.
            text = f"\x1b[32m{text}\x1b[0m"
        elif proc != "MainProcess":
            # External process.
            text = f"\x1b[33m{text}\x1b[0m"
    print(text)
