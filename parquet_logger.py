import threading
import queue
import os
import time
import pyarrow
import pyarrow.parquet

from telemetry import ROOT_KEY


# PID fields worth plotting, relative to the controller namespace
PID_SIGNALS = (
    "setpoint",
    "measure",
    "error",
    "sum_error",
    "proportion",
    "integral",
    "derivative",
    "output",
)


def pid_signals(namespace, pid_key="pid"):
    """Signal names for a PID stored as state[pid_key] of a controller."""
    return {f"{namespace}.{pid_key}.{name}" for name in PID_SIGNALS}


def flatten(data, prefix=""):
    """{"a": {"b": 1.0}} -> {"a.b": 1.0}, keeping numeric leaves only."""
    flat = {}
    for k, v in data.items():
        name = f"{prefix}{k}"
        if isinstance(v, dict):
            flat.update(flatten(v, name + "."))
        elif isinstance(v, (int, float)) and not isinstance(v, bool):
            flat[name] = float(v)
    return flat


class ParquetLogger:
    def __init__(self, path="logs/", flush_interval_s=60, flush_lines=1000, signals=()):
        self.path = path
        self.flush_interval_s = flush_interval_s
        self.flush_lines = flush_lines
        self.signals = set(signals)
        self._writer = None

        # Check the logs directory exists at the initialization and create it if not
        os.makedirs(self.path, exist_ok=True)

        # check largest logXXX.parquet file index to avoid overwriting and create logXXX+1.parquet
        existing_logs = [f for f in os.listdir(self.path) if f.startswith("log") and f.endswith(".parquet")]
        max_index = -1
        for log_file in existing_logs:
            try:
                index = int(log_file[3:-8])  # Extract the number between 'log' and '.parquet'
                if index > max_index:
                    max_index = index
            except ValueError:
                continue

        self.log_file_path = os.path.join(self.path, f"log{max_index + 1}.parquet")
        self.q = queue.SimpleQueue()

        self._schema = pyarrow.schema(
            [("timestamp", pyarrow.float64())] +
            [(name, pyarrow.float64()) for name in sorted(self.signals)]
        )

        # Start the logging thread
        self.running = True
        self.thread = threading.Thread(target=self._loop, daemon=True)
        self.thread.start()

    # called by telemetry
    def push(self, packet: dict):
        self.q.put_nowait(packet)

    def _loop(self):
        last_flush_time = time.monotonic()
        lines = []

        while self.running or not self.q.empty():
            try:
                packet = self.q.get(timeout=0.2)
                lines.append(packet)
            except queue.Empty:
                pass

            if lines and (time.monotonic() - last_flush_time >= self.flush_interval_s or len(lines) >= self.flush_lines):
                self._flush(lines)
                lines = []
                last_flush_time = time.monotonic()

        self._flush(lines)

    def rows(self, packets):
        rows = []

        for pkt in packets:
            row = {}

            # timestamp for PlotJuggler
            if "timestamp" in pkt:
                row["timestamp"] = pkt["timestamp"]

            for name, v in flatten(pkt.get(ROOT_KEY, {})).items():
                if name in self.signals:
                    row[name] = v

            rows.append(row)

        return rows

    def _flush(self, packets):
        rows = self.rows(packets)
        if not rows:
            return

        table = pyarrow.Table.from_pylist(rows, schema=self._schema)

        if self._writer is None:
            self._writer = pyarrow.parquet.ParquetWriter(
                self.log_file_path,
                self._schema,
                compression="snappy"
            )

        self._writer.write_table(table)

    def stop(self):
        self.running = False
        self.thread.join()

        if self._writer is not None:
            self._writer.close()
            self._writer = None
