#!/usr/bin/env python3
import argparse
import importlib
import signal
import sys
import time

from logger import Logger
from parquet_logger import ParquetLogger, pid_signals
from telemetry import Telemetry

running = True

def stop(sig, frame):
    global running
    running = False


def load_controller(name):
    """Import controllers.<name>; it must define DT, NAME, init_controller and step_controller."""
    module = importlib.import_module(f"controllers.{name}")
    for attr in ("DT", "NAME", "init_controller", "step_controller"):
        if not hasattr(module, attr):
            raise AttributeError(f"controller {name!r} does not define {attr}")
    return module


def read_measurements(lines):
    """Yield one float per non-blank line, warning about (and skipping) junk."""
    for lineno, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            yield float(line)
        except ValueError:
            print(f"[WARN] line {lineno}: not a measurement: {line!r}")


def run(controller, measurements, telemetry=None, logger=None, realtime=True, out=None):
    """
    Step `controller` once per DT with the next measurement until the
    measurements run out or SIGINT arrives. Returns the number of ticks.
    """
    if out is None:
        out = sys.stdout
    controller_state = controller.init_controller()
    last_controller_run = time.monotonic()
    tick = 0

    for measure in measurements:
        if not running:
            break
        loop_start = time.monotonic() # TELEMETRY: measure loop time

        # -------------------------------------------------------
        # Wait for the next controller period
        # -------------------------------------------------------
        if realtime:
            elapsed = time.monotonic() - last_controller_run
            if elapsed < controller.DT:
                time.sleep(controller.DT - elapsed)
            now = time.monotonic()
            if telemetry is not None:
                telemetry.accum_rt_jitter(now - last_controller_run - controller.DT) # TELEMETRY: accumulate jitter
            last_controller_run += controller.DT

        inputs = {"MEASURE": measure}

        # Step controller
        controller_start = time.monotonic()  # TELEMETRY: measure controller time
        controller_state, outputs = controller.step_controller(controller_state, inputs)
        controller_execution_time = time.monotonic() - controller_start

        print(f"{tick}\t{measure:.3f}\t{outputs}", file=out)

        # -------------------------------------------------------
        # Telemetry / logs
        # -------------------------------------------------------
        if logger is not None:
            logger.push_record({
                "tick": tick,
                "inputs": inputs,
                "outputs": outputs,
                controller.NAME: controller_state,
            })
            logger.roll_if_needed()

        if telemetry is not None:
            telemetry.accum_rt_ctrl_time(controller_execution_time) # TELEMETRY: accumulate controller time
            telemetry.push("inputs", inputs)
            telemetry.push("outputs", outputs)
            telemetry.push(f"{controller.NAME}", controller_state)

            loop_time = time.monotonic() - loop_start # TELEMETRY: measure loop time
            telemetry.accum_rt_loop_time(loop_time)
            if loop_time > controller.DT:
                telemetry.flag_rt_overrun() # TELEMETRY: flag overrun

        tick += 1

    return tick


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run a controller against a stream of measurements.")
    parser.add_argument("--controller", default="pid_heater_controller",
                        help="module name under controllers/")
    parser.add_argument("--input", default="-",
                        help="measurement file, one value per line ('-' for stdin)")
    parser.add_argument("--no-realtime", dest="realtime", action="store_false",
                        help="do not wait DT between ticks")
    parser.add_argument("--log-dir", default=None, help="write a msgpack tick log here")
    parser.add_argument("--parquet-dir", default=None, help="write PID signals to parquet here")
    parser.add_argument("--telemetry", action="store_true", help="broadcast msgpack telemetry over UDP")
    parser.add_argument("--ip", default="255.255.255.255")
    parser.add_argument("--port", type=int, default=9870)
    parser.add_argument("--rate", type=float, default=10.0, help="telemetry rate (Hz)")
    return parser.parse_args(argv)


def main(argv=None):
    global running
    running = True
    args = parse_args(argv)

    controller = load_controller(args.controller)
    print(f"[INFO] controller {controller.NAME} DT={controller.DT}s")

    logger = None
    telemetry = None
    parquet = None
    source = None
    previous_handler = signal.signal(signal.SIGINT, stop)
    try:
        if args.log_dir:
            logger = Logger(path=args.log_dir)

        if args.telemetry or args.parquet_dir:
            # UDP only with --telemetry; parquet is fed as a sink either way
            telemetry = Telemetry(ip=args.ip, port=args.port, rate_hz=args.rate, send=args.telemetry)
            if args.parquet_dir:
                parquet = ParquetLogger(path=args.parquet_dir, signals=pid_signals(controller.NAME))
                telemetry.add_sink(parquet)

        source = sys.stdin if args.input == "-" else open(args.input)
        ticks = run(controller, read_measurements(source), telemetry, logger, args.realtime)
    finally:
        if source is not None and source is not sys.stdin:
            source.close()
        # Cleanup after exiting main loop
        if telemetry is not None:
            telemetry.stop()
        if parquet is not None:
            parquet.stop()
        if logger is not None:
            logger.stop()
        signal.signal(signal.SIGINT, previous_handler)

    print(f"[INFO] {ticks} ticks")


if __name__ == "__main__":
    main()
