import os
import msgpack
import threading
import time


def to_plain(obj):
    """
    Turn controller state into something msgpack can pack.

    Processors with a snapshot() become that dict, other objects their
    str(); dicts and sequences are converted recursively.
    """
    if obj is None or isinstance(obj, (bool, int, float, str, bytes)):
        return obj
    if isinstance(obj, dict):
        return {str(k): to_plain(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_plain(v) for v in obj]
    if hasattr(obj, "snapshot"):
        return to_plain(obj.snapshot())
    if hasattr(obj, "output") and callable(obj.output):
        return {"output": to_plain(obj.output())}
    return str(obj)


class Logger:
    """Append-only msgpack log, one packed record per push."""

    def __init__(self, path="logs/", max_bytes=100*1024*1024, max_seconds=60*60*4):
        os.makedirs(path, exist_ok=True)

        self.path = path
        self.max_bytes = max_bytes
        self.max_seconds = max_seconds

        self._lock = threading.Lock()
        self._open()

    def _open(self):
        # find next log index
        existing = [
            f for f in os.listdir(self.path)
            if f.startswith("log") and f.endswith(".msgpack")
        ]

        max_index = -1
        for f in existing:
            try:
                max_index = max(max_index, int(f[3:-8]))
            except ValueError:
                pass

        self.log_file_path = os.path.join(self.path, f"log{max_index + 1}.msgpack")

        # open file once, append-only
        self._file = open(self.log_file_path, "ab")
        self._opened_at = time.monotonic()
        self._bytes = 0

    def push(self, bin_packet: bytes):
        # atomic enough for that use-case
        with self._lock:
            if self._file.closed:
                return
            self._file.write(bin_packet)
            self._file.flush()
            self._bytes += len(bin_packet)

    def push_record(self, record: dict):
        self.push(msgpack.packb(to_plain(record), use_bin_type=True))

    def roll_if_needed(self):
        """Start the next log file once this one is too big or too old."""
        with self._lock:
            if self._file.closed:
                return False
            too_big = self._bytes >= self.max_bytes
            too_old = time.monotonic() - self._opened_at >= self.max_seconds
            if not (too_big or too_old):
                return False
            self._file.close()
            self._open()
            return True

    def stop(self):
        with self._lock:
            if self._file.closed:
                return
            self._file.flush()
            self._file.close()


def read_records(log_file_path):
    """Yield every record from a log written by Logger."""
    with open(log_file_path, "rb") as f:
        unpacker = msgpack.Unpacker(f, raw=False)
        for record in unpacker:
            yield record
