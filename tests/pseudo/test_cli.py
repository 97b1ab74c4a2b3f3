"""
Pseudo integration tests - CLI against the fake rrdtool
"""

import sys
import tempfile
from pathlib import Path

import argparse
import pytest

from rrdpipe.cli.main import load_script, main, parse_ds_arg, parse_rra_arg, parse_value_arg
from rrdpipe.errors import ConfigError
from rrdpipe.protocol import ArchiveSpec, DatastoreSpec

FAKE_TOOL = Path(__file__).parent.parent.parent / "examples" / "tools" / "fake_rrdtool.py"


def write_config(tmpdir: Path) -> str:
    config_path = tmpdir / "rrdpipe.yaml"
    config_path.write_text(
        "tool:\n"
        f"  path: {sys.executable}\n"
        f"  args: ['{FAKE_TOOL}', '-']\n"
        f"  workdir: {tmpdir}\n"
        "channel:\n"
        "  timeout_s: 10\n"
    )
    return str(config_path)


def test_parse_ds_arg():
    assert parse_ds_arg("temp:GAUGE:600:-273:5000") == DatastoreSpec("temp", "GAUGE", [600, -273, 5000])
    assert parse_ds_arg("temp:GAUGE:600:U:U") == DatastoreSpec("temp", "GAUGE", [600, None, None])
    assert parse_ds_arg("sum:COMPUTE:a,b,+") == DatastoreSpec("sum", "COMPUTE", "a,b,+")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_ds_arg("temp:GAUGE")


def test_parse_rra_and_value_args():
    assert parse_rra_arg("AVERAGE:0.5:1:1200") == ArchiveSpec("AVERAGE", 0.5, 1, 1200)
    assert parse_value_arg("temp=21.5") == ("temp", 21.5)
    assert parse_value_arg("temp=U") == ("temp", "U")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_rra_arg("AVERAGE:0.5")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_value_arg("temp")


def test_cli_create_update():
    with tempfile.TemporaryDirectory() as tmp:
        tmpdir = Path(tmp)
        config = write_config(tmpdir)

        assert main([
            "--config", config, "create", "temperature.rrd",
            "--ds", "temp:GAUGE:600:-273:5000",
            "--rra", "AVERAGE:0.5:1:1200",
        ]) == 0
        assert main(["--config", config, "update", "temperature.rrd", "temp=50"]) == 0
        assert main(["--config", config, "update", "temperature.rrd", "temp=51", "--time", "1700000000"]) == 0

        content = (tmpdir / "temperature.rrd").read_text()
        assert "RRA:AVERAGE:0.50:1:1200" in content
        assert "update -t temp N:50" in content
        assert "update -t temp 1700000000:51" in content


def test_cli_update_missing_file_fails():
    with tempfile.TemporaryDirectory() as tmp:
        config = write_config(Path(tmp))
        assert main(["--config", config, "update", "missing.rrd", "temp=1"]) == 1


def test_cli_validation_error():
    with tempfile.TemporaryDirectory() as tmp:
        config = write_config(Path(tmp))
        assert main(["--config", config, "update", "a.rrd", "bad-name=1"]) == 2


def test_cli_exec(capsys):
    with tempfile.TemporaryDirectory() as tmp:
        config = write_config(Path(tmp))
        assert main(["--config", config, "exec", "noise 2"]) == 0
        out = capsys.readouterr().out
        assert "noise line 0" in out
        assert main(["--config", config, "exec", "graph x.png"]) == 1


def test_cli_run_script():
    with tempfile.TemporaryDirectory() as tmp:
        tmpdir = Path(tmp)
        config = write_config(tmpdir)
        script = tmpdir / "script.yaml"
        script.write_text(
            "operations:\n"
            "  - create:\n"
            "      file: net.rrd\n"
            "      datastores:\n"
            "        - [rx, COUNTER, [300, null, null]]\n"
            "        - {name: tx, type: COUNTER, args: [300, 0, 1000000]}\n"
            "      archives:\n"
            "        - [AVERAGE, 0.5, 1, 288]\n"
            "  - update:\n"
            "      file: net.rrd\n"
            "      values: {rx: 10, tx: 20}\n"
            "  - update:\n"
            "      file: net.rrd\n"
            "      values: [[rx, 11], [tx, 21]]\n"
            "      time: 1700000300\n"
        )
        assert main(["--config", config, "run", str(script)]) == 0

        content = (tmpdir / "net.rrd").read_text()
        assert "DS:rx:COUNTER:300:U:U DS:tx:COUNTER:300:0:1000000" in content
        assert "update -t rx:tx N:10:20" in content
        assert "update -t rx:tx 1700000300:11:21" in content


def test_cli_run_script_stops_on_failure():
    with tempfile.TemporaryDirectory() as tmp:
        tmpdir = Path(tmp)
        config = write_config(tmpdir)
        script = tmpdir / "script.yaml"
        script.write_text(
            "operations:\n"
            "  - update: {file: missing.rrd, values: {rx: 1}}\n"
            "  - create:\n"
            "      file: late.rrd\n"
            "      datastores: [[rx, GAUGE, [300, 0, 1]]]\n"
            "      archives: [[LAST, 0.5, 1, 10]]\n"
        )
        assert main(["--config", config, "run", str(script)]) == 1
        assert not (tmpdir / "late.rrd").exists()

        assert main(["--config", config, "run", "--keep-going", str(script)]) == 1
        assert (tmpdir / "late.rrd").exists()


@pytest.mark.parametrize("text", [
    "operations: [unclosed\n",
    "operations:\n  - update: foo\n",
    "operations:\n  - create: [net.rrd]\n",
    "operations:\n  - delete: {file: net.rrd}\n",
    "- update: {file: net.rrd}\n",
])
def test_cli_run_bad_script_is_usage_error(text):
    """Malformed scripts fail with the usage exit code instead of a traceback"""
    with tempfile.TemporaryDirectory() as tmp:
        tmpdir = Path(tmp)
        config = write_config(tmpdir)
        script = tmpdir / "script.yaml"
        script.write_text(text)
        assert main(["--config", config, "run", str(script)]) == 2


def test_load_script_wraps_yaml_errors():
    with tempfile.TemporaryDirectory() as tmp:
        script = Path(tmp) / "script.yaml"
        script.write_text("operations: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_script(str(script))


def test_cli_missing_tool():
    with tempfile.TemporaryDirectory() as tmp:
        assert main(["--tool", str(Path(tmp) / "nope"), "exec", "noise 0"]) == 1


def test_cli_no_command():
    assert main([]) == 2
