import socket
import time
import msgpack
import threading
import os
import psutil

from logger import to_plain

ROOT_KEY = "pidctl"


def get_system_metrics():
    # CPU %
    cpu = psutil.cpu_percent(interval=None)

    # RAM %
    mem = psutil.virtual_memory().percent

    # CPU temp
    try:
        with open("/sys/class/thermal/thermal_zone0/temp") as f:
            temp = int(f.read()) / 1000.0
    except (OSError, ValueError):
        temp = None

    return {
        "cpu_percent": cpu,
        "mem_percent": mem,
        "cpu_temp_c": temp,
    }


class Telemetry:
    """
    Frame-based telemetry daemon.

    - You call .push(name, dict) or .push_raw(dict) from anywhere.
    - It accumulates data for the *next frame* only.
    - At its own rate (rate_hz), it builds one packet and hands it to every
      registered sink, network or not. With send=True it also packs it with
      MsgPack and broadcasts it over UDP whenever the network is usable.
    - After each period, the internal frame dict is CLEARED.
    - So if you stop pushing some namespace (e.g. old controller), it disappears
      from telemetry automatically on the next frame.
    """

    def __init__(self, rate_hz=30, ip="255.255.255.255", port=9870, iface=None, send=True, start=True):
        self.rate_hz = rate_hz
        self.period = 1.0 / rate_hz
        self.system_metrics_sample_period = 1.0 # seconds
        self.addr = (ip, port)
        self.iface = iface
        self.send = send

        # --- Controller metrics accumulators ---
        self._reset_metrics()
        # ---------------------------------------

        self.enabled = False
        self.sock = None
        self._last_retry = float("-inf")
        self._sinks = []

        # Data for the *next* frame only
        self._frame = {}             # dict to be sent next
        self._lock = threading.Lock()
        self._running = start
        self._last_system_metrics_sample = 0.0

        self._thread = None
        if start:
            self._thread = threading.Thread(target=self._loop, daemon=True)
            self._thread.start()

    # ----------------------------------------------------------------------
    def add_sink(self, sink):
        """Also hand every built packet to sink.push(packet)."""
        self._sinks.append(sink)

    # ----------------------------------------------------------------------
    def push(self, name: str, data: dict):
        """
        Push a dictionary under a namespace for the *next frame*.

        Example:
            telemetry.push("outputs", outputs_dict)
            telemetry.push("pid_heater", controller_state)
        """
        if not isinstance(data, dict):
            return

        plain = to_plain(data)
        with self._lock:
            self._frame[name] = plain

    # ----------------------------------------------------------------------
    def push_raw(self, root_dict: dict):
        """
        Merge a raw dict into the frame root.

        Example:
            telemetry.push_raw({"host": {...}, "debug": {...}})
        """
        if not isinstance(root_dict, dict):
            return

        with self._lock:
            # shallow merge into frame root
            for k, v in root_dict.items():
                self._frame[k] = to_plain(v)

    # ----------------------------------------------------------------------
    def _network_ok(self):
        # crude but cheap: interface exists
        if self.iface is None:
            return True
        return os.path.isdir(f"/sys/class/net/{self.iface}")

    # ----------------------------------------------------------------------
    def _try_enable_socket(self):
        if not self._network_ok():
            return False

        try:
            self.sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
            self.sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            self.enabled = True
            return True
        except OSError:
            self.enabled = False
            return False

    # ----------------------------------------------------------------------
    def build_packet(self, now=None):
        """Take the current frame, CLEAR it, and wrap it with metrics."""
        if now is None:
            now = time.time()

        with self._lock:
            # Always create a frame, even if empty
            frame = self._frame
            self._frame = {}

        # Obtain system metrics once per some time and put into frame
        if now - self._last_system_metrics_sample > self.system_metrics_sample_period:
            frame["system_metrics"] = get_system_metrics()
            self._last_system_metrics_sample = now

        controller_metrics = self._take_metrics()
        if controller_metrics:
            frame["controller_metrics"] = controller_metrics

        return {
            "timestamp": now,
            ROOT_KEY: frame,
        }

    # ----------------------------------------------------------------------
    def _take_metrics(self):
        # Extract and reset accumulated run_controller metrics
        controller_metrics = {}
        with self._lock:
            if self._rt_loop_count > 0:
                controller_metrics["loop_time_avg_ms"] = (self._rt_loop_sum / self._rt_loop_count) * 1000
            if self._rt_ctrl_count > 0:
                controller_metrics["ctrl_time_avg_us"] = (self._rt_ctrl_sum / self._rt_ctrl_count) * 1e6
            if self._rt_jitter_count > 0:
                mean = self._rt_jitter_sum / self._rt_jitter_count
                mean_sq = self._rt_jitter_sq_sum / self._rt_jitter_count
                rms = max(mean_sq - mean * mean, 0.0) ** 0.5
                controller_metrics["jitter_rms_us"] = rms * 1e6
            if self._rt_ctrl_iterations or self._rt_loop_count:
                controller_metrics["max_loop_time_ms"] = self._rt_loop_max * 1000
                controller_metrics["max_ctrl_time_us"] = self._rt_ctrl_max * 1e6
                controller_metrics["ctrl_iterations"] = self._rt_ctrl_iterations
                controller_metrics["loop_overruns"] = self._rt_overruns
            self._reset_metrics()
        return controller_metrics

    def _reset_metrics(self):
        self._rt_loop_sum = 0.0
        self._rt_loop_count = 0
        self._rt_ctrl_sum = 0.0
        self._rt_ctrl_count = 0
        self._rt_overruns = 0
        self._rt_jitter_sum = 0.0
        self._rt_jitter_sq_sum = 0.0
        self._rt_jitter_count = 0
        self._rt_loop_max = 0.0
        self._rt_ctrl_max = 0.0
        self._rt_ctrl_iterations = 0

    # ----------------------------------------------------------------------
    def tick(self, now=None):
        """
        One telemetry period: build the packet, hand it to every sink, and
        send it over UDP when sending is on and the network is usable.
        """
        packet = self.build_packet(now)
        for sink in self._sinks:
            sink.push(packet)

        if not self.send:
            return packet

        # Try enabling socket if disabled
        if not self.enabled:
            if packet["timestamp"] - self._last_retry > 2.0:
                self._last_retry = packet["timestamp"]
                self._try_enable_socket()
            if not self.enabled:
                return packet

        try:
            bin_packet = msgpack.packb(packet, use_bin_type=True)
            self.sock.sendto(bin_packet, self.addr)
        except OSError:
            # network down -> disable and retry later
            self.enabled = False
            self.sock.close()
            self.sock = None
        return packet

    def _loop(self):
        while self._running:
            # Rate control
            time.sleep(self.period)
            self.tick()

    # ----------------------------------------------------------------------
    def stop(self):
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        if self.sock is not None:
            self.sock.close()

    # ----------------------------------------------------------------------
    def accum_rt_loop_time(self, dt: float):
        """Accumulate loop execution time (seconds)."""
        with self._lock:
            self._rt_loop_sum += dt
            self._rt_loop_count += 1
            if dt > self._rt_loop_max:
                self._rt_loop_max = dt

    def accum_rt_ctrl_time(self, dt: float):
        """Accumulate controller execution time (seconds)."""
        with self._lock:
            self._rt_ctrl_sum += dt
            self._rt_ctrl_count += 1
            self._rt_ctrl_iterations += 1
            if dt > self._rt_ctrl_max:
                self._rt_ctrl_max = dt

    def flag_rt_overrun(self):
        """Increase count of controller loop overruns."""
        with self._lock:
            self._rt_overruns += 1

    def accum_rt_jitter(self, jitter: float):
        with self._lock:
            self._rt_jitter_sum += jitter
            self._rt_jitter_sq_sum += jitter * jitter
            self._rt_jitter_count += 1
