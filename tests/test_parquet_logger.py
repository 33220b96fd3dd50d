import os

import pyarrow.parquet

from parquet_logger import ParquetLogger, flatten, pid_signals
from telemetry import ROOT_KEY


def packet(t, error, output):
    return {
        "timestamp": t,
        ROOT_KEY: {
            "pid_heater": {
                "pid": {"error": error, "output": output, "setpoint": 21.0},
                "measure_filtered": 20.0,
            },
            "outputs": {"HEATER": {"KNOB": 0.5}},
        },
    }


def test_flatten_keeps_numbers_only():
    flat = flatten({"a": {"b": 1, "c": "x", "d": True}, "e": 2.5})
    assert flat == {"a.b": 1.0, "e": 2.5}


def test_pid_signals():
    signals = pid_signals("pid_heater")
    assert "pid_heater.pid.output" in signals
    assert "pid_heater.pid.sum_error" in signals


def test_writes_selected_signals(tmp_path):
    logger = ParquetLogger(path=str(tmp_path), flush_lines=2, signals=pid_signals("pid_heater"))
    assert os.path.basename(logger.log_file_path) == "log0.parquet"
    for i in range(3):
        logger.push(packet(float(i), error=1.0 - i, output=0.1 * i))
    logger.stop()

    table = pyarrow.parquet.read_table(logger.log_file_path)
    assert table.num_rows == 3
    rows = table.to_pylist()
    assert [r["timestamp"] for r in rows] == [0.0, 1.0, 2.0]
    assert rows[2]["pid_heater.pid.error"] == -1.0
    assert rows[0]["pid_heater.pid.setpoint"] == 21.0
    # signals never pushed stay empty
    assert rows[0]["pid_heater.pid.derivative"] is None
    assert "outputs.HEATER.KNOB" not in table.column_names
