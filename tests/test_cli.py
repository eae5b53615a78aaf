"""
Command Line Interface Tests

This module contains tests for the command-line interface functionality.
"""

import json
import logging
import os
import signal
import pytest
import yaml
from unittest.mock import MagicMock, patch

from bmcfan.cli import interface
from bmcfan.cli.interface import CLI
from bmcfan.config import DEFAULT_CONFIG_PATH
from bmcfan.ipmi import TemperatureReading, PowerConsumption, ChassisStatus, FanReading

MACHINE_RECORD = {
    "id": "m1",
    "name": "r720",
    "enabled": True,
    "cron": "*/30 * * * * *",
    "ipmiConfig": {"host": "10.0.0.20", "user": "root", "password": "calvin"},
    "fanSpeed": 20,
    "activePresetId": "p1",
    "presets": [
        {
            "id": "p1",
            "name": "Default Preset",
            "fanCurve": [
                {"temperature": 30, "fanSpeed": 10},
                {"temperature": 40, "fanSpeed": 30},
                {"temperature": 50, "fanSpeed": 50},
            ],
        }
    ],
}

# Fixtures


@pytest.fixture
def store_path(tmp_path):
    return str(tmp_path / "machines.json")


@pytest.fixture
def config_file(tmp_path, store_path):
    """Create a configuration file pointing at a temporary store"""
    path = tmp_path / "config.yaml"
    with open(path, "w") as f:
        yaml.safe_dump({"store": {"path": store_path}}, f)
    return str(path)


@pytest.fixture
def stored_machine(store_path):
    with open(store_path, "w") as f:
        json.dump([MACHINE_RECORD], f)
    return MACHINE_RECORD


@pytest.fixture
def mock_commander():
    """Create a mock IPMI commander"""
    commander = MagicMock()
    commander.get_temperatures.return_value = [
        TemperatureReading("Temp", "0Eh", "ok", 45.0, "C"),
        TemperatureReading("Inlet Temp", "04h", "ok", float("nan"), "C"),
    ]
    commander.get_fan_speeds.return_value = [FanReading("Fan1 RPM", "30h", "ok", 3480.0)]
    commander.get_power_consumption.return_value = PowerConsumption(112, 98, 245, 120)
    commander.get_chassis_status.return_value = ChassisStatus(
        True, False, False, False, False, "command", "inactive"
    )
    return commander


@pytest.fixture
def patched_commander(mock_commander):
    with patch("bmcfan.cli.interface.IPMICommander") as mock_cls:
        mock_cls.from_config.return_value = mock_commander
        yield mock_cls


@pytest.fixture
def cli():
    """Create a CLI instance"""
    return CLI()

# Argument Parsing Tests


def test_cli_default_arguments(cli):
    """Test default CLI arguments"""
    args = cli.parser.parse_args([])
    assert args.config == DEFAULT_CONFIG_PATH
    assert not args.debug
    assert not args.list
    assert args.apply is None
    assert args.cron == "*/30 * * * * *"


def test_cli_actions_are_exclusive(cli):
    """Test only one action may be given"""
    with pytest.raises(SystemExit):
        cli.parser.parse_args(["--list", "--apply", "m1"])


def test_cli_add_requires_credentials(cli, config_file):
    """Test --add without connection details"""
    with pytest.raises(SystemExit) as exc_info:
        cli.run(["-c", config_file, "--add", "r720", "--host", "10.0.0.20"])
    assert exc_info.value.code == 2

# Configuration Tests


def test_cli_writes_default_config(cli, tmp_path, store_path):
    """Test a missing config file is created with defaults"""
    config_path = str(tmp_path / "etc" / "config.yaml")
    with patch("bmcfan.cli.interface.load_config") as mock_load:
        mock_load.side_effect = RuntimeError("stop")
        with pytest.raises(SystemExit):
            cli.run(["-c", config_path, "--list"])

    assert os.path.exists(config_path)
    with open(config_path) as f:
        assert yaml.safe_load(f)["ipmi"]["binary"] == "ipmitool"


def test_cli_debug_logging(cli, config_file):
    """Test --debug lowers the package log level"""
    cli.run(["-c", config_file, "--debug", "--list"])
    assert logging.getLogger("bmcfan").level == logging.DEBUG

    cli.run(["-c", config_file, "--list"])
    assert logging.getLogger("bmcfan").level == logging.INFO

# Command Tests


def test_cli_list_empty(cli, config_file, capsys):
    """Test listing an empty store"""
    cli.run(["-c", config_file, "--list"])
    assert "No machines configured" in capsys.readouterr().out


def test_cli_list(cli, config_file, stored_machine, capsys):
    """Test listing machines"""
    cli.run(["-c", config_file, "--list"])
    out = capsys.readouterr().out
    assert "r720" in out
    assert "preset 'Default Preset'" in out
    assert "calvin" not in out


def test_cli_add_and_enable(cli, config_file, store_path, capsys):
    """Test adding a machine then enabling it"""
    cli.run(["-c", config_file, "--add", "r720", "--host", "10.0.0.20",
             "--user", "root", "--password", "calvin", "--cron", "*/5 * * * *"])
    assert "disabled" in capsys.readouterr().out

    with open(store_path) as f:
        records = json.load(f)
    assert len(records) == 1
    assert records[0]["cron"] == "*/5 * * * *"
    assert not records[0]["enabled"]

    cli.run(["-c", config_file, "--enable", records[0]["id"]])
    assert "enabled" in capsys.readouterr().out
    with open(store_path) as f:
        assert json.load(f)[0]["enabled"]

    cli.run(["-c", config_file, "--disable", records[0]["id"]])
    with open(store_path) as f:
        assert not json.load(f)[0]["enabled"]


def test_cli_apply(cli, config_file, stored_machine, patched_commander, mock_commander, capsys):
    """Test a one-shot apply cycle"""
    cli.run(["-c", config_file, "--apply", "m1"])

    assert "Fan speed set to 30%" in capsys.readouterr().out
    mock_commander.set_manual_mode.assert_called_once()
    mock_commander.set_fan_speed.assert_called_once_with(30)

    # Connection settings come from the ipmi config section
    settings = patched_commander.from_config.call_args[1]["settings"]
    assert settings["binary"] == "ipmitool"


def test_cli_apply_unknown_machine(cli, config_file, patched_commander):
    """Test apply errors exit with status 1"""
    with pytest.raises(SystemExit) as exc_info:
        cli.run(["-c", config_file, "--apply", "missing"])
    assert exc_info.value.code == 1


def test_cli_status(cli, config_file, stored_machine, patched_commander, capsys):
    """Test the status report"""
    cli.run(["-c", config_file, "--status", "m1"])
    out = capsys.readouterr().out

    assert "45.0°C" in out
    assert "no reading" in out
    assert "3480 RPM" in out
    assert "Current 112 W" in out
    assert "Last power event:   command" in out


def test_cli_daemon(cli, config_file, stored_machine):
    """Test the daemon starts the scheduler with stored machines and stops it"""
    with patch("bmcfan.cli.interface.MachineScheduler") as mock_scheduler_cls, \
         patch("signal.signal"), \
         patch("signal.pause", side_effect=KeyboardInterrupt):
        cli.run(["-c", config_file])

    scheduler = mock_scheduler_cls.return_value
    machines = scheduler.start.call_args[0][0]
    assert [m.id for m in machines] == ["m1"]
    scheduler.shutdown.assert_called_once()
    assert cli.service.scheduler is scheduler
    scheduler.watch_store.assert_called_once_with(cli.repository, 10)


def test_cli_daemon_reloads_on_sighup(cli, config_file, stored_machine):
    """Test SIGHUP reloads the machine store into the scheduler"""
    with patch("bmcfan.cli.interface.MachineScheduler") as mock_scheduler_cls, \
         patch("signal.signal") as mock_signal, \
         patch("signal.pause", side_effect=KeyboardInterrupt):
        cli.run(["-c", config_file])

    handlers = {call[0][0]: call[0][1] for call in mock_signal.call_args_list}
    scheduler = mock_scheduler_cls.return_value
    scheduler.reload.assert_not_called()

    handlers[signal.SIGHUP](signal.SIGHUP, None)
    scheduler.reload.assert_called_once_with(cli.repository)


def test_cli_daemon_without_store_watch(cli, tmp_path, store_path, stored_machine):
    """Test a zero reload interval disables polling"""
    config_path = tmp_path / "nowatch.yaml"
    with open(config_path, "w") as f:
        yaml.safe_dump({"store": {"path": store_path, "reload_interval": 0}}, f)

    with patch("bmcfan.cli.interface.MachineScheduler") as mock_scheduler_cls, \
         patch("signal.signal"), \
         patch("signal.pause", side_effect=KeyboardInterrupt):
        cli.run(["-c", str(config_path)])

    mock_scheduler_cls.return_value.watch_store.assert_not_called()


def test_main_configures_logging(config_file):
    """Test the entry point configures logging before running"""
    with patch("logging.basicConfig") as mock_basic_config, \
         patch("sys.argv", ["bmcfan", "-c", config_file, "--list"]):
        interface.main()
    mock_basic_config.assert_called_once()
