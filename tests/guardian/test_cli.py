"""
CLI Tests.

============================================================
PURPOSE
============================================================
Argument parsing, configuration validation and the run loop of
the chain-guardian command.

============================================================
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest

from guardian.cli import create_guardians, create_parser, main, run_guardians, setup_logging, validate_monitors
from guardian.config import AppConfig
from guardian.exceptions import GuardianError, UnknownGuardianTypeError, UnknownTaskError, ValidationError
from guardian.guardians import GuardianRegistry, register_builtin_guardians


VALID_CONFIG = """
guardians:
  laminar:
    networkType: laminarChain
    nodeEndpoint: ws://localhost:9944
    monitors:
      pools:
        task: synthetic.liquidityPool
        arguments: {poolId: all, currencyId: fTokens}
        actions:
          - url: http://hooks/pools
      deposits:
        task: system.events
        arguments: {name: balances.Deposit}
  acala:
    networkType: acalaChain
    nodeEndpoint: ws://localhost:9945
    monitors:
      loans:
        task: loans.position
        arguments: {account: alice, currencyId: DOT}
"""


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def registry():
    return register_builtin_guardians(GuardianRegistry())


def app_config(**guardians):
    return AppConfig(guardians=guardians)


class TestParser:
    """Tests for create_parser."""

    def test_run_defaults(self):
        args = create_parser().parse_args(["run"])

        assert args.command == "run"
        assert args.config == "guardian.yml"
        assert args.log_level == "INFO"
        assert args.log_format == "json"

    def test_validate_options(self):
        args = create_parser().parse_args(["validate", "-c", "x.yml", "--log-format", "text"])

        assert args.command == "validate"
        assert args.config == "x.yml"
        assert args.log_format == "text"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            create_parser().parse_args([])


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_level_and_single_handler(self, restore_logging):
        setup_logging("DEBUG", "text")

        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1

    def test_json_format(self, restore_logging):
        setup_logging("WARNING", "json")

        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord("guardian", logging.WARNING, __file__, 1, "hello", None, None)
        assert '"message": "hello"' in formatter.format(record)


class TestCreateGuardians:
    """Tests for guardian construction from config."""

    def test_unknown_network_type(self, registry):
        config = app_config(g={"networkType": "solana", "nodeEndpoint": "ws://n"})

        with pytest.raises(UnknownGuardianTypeError):
            create_guardians(config, registry)

    def test_missing_network_type(self, registry):
        with pytest.raises(UnknownGuardianTypeError):
            create_guardians(app_config(g={"nodeEndpoint": "ws://n"}), registry)

    def test_validate_monitors(self, registry):
        guardians = create_guardians(app_config(g={
            "networkType": "acalaChain",
            "nodeEndpoint": "ws://n",
            "monitors": {
                "ok": {"task": "system.events", "arguments": {"name": "a.B"}},
                "typo": {"task": "loans.positon"},
                "bad": {"task": "loans.position", "arguments": {"account": "alice"}},
            },
        }), registry)

        errors = validate_monitors(guardians["g"])

        assert len(errors) == 2
        unknown = next(e for e in errors if isinstance(e, UnknownTaskError))
        invalid = next(e for e in errors if isinstance(e, ValidationError))
        assert unknown.monitor == "typo"
        assert invalid.monitor == "bad"
        assert invalid.guardian_id == "g"

    def test_margin_monitor_is_unknown_on_laminar(self, registry):
        guardians = create_guardians(app_config(laminar={
            "networkType": "laminarChain",
            "nodeEndpoint": "ws://n",
            "monitors": {"marginMonitor": {"task": "margin.poolInfo", "arguments": {"poolId": 1}}},
        }), registry)

        [error] = validate_monitors(guardians["laminar"])

        assert isinstance(error, UnknownTaskError)
        assert error.monitor == "marginMonitor"


class TestMain:
    """Tests for main."""

    def test_validate_ok(self, tmp_path, capsys, restore_logging):
        path = tmp_path / "guardian.yml"
        path.write_text(VALID_CONFIG)

        assert main(["validate", "--config", str(path), "--log-level", "ERROR"]) == 0
        assert "OK: 2 guardian(s), 3 monitor(s)" in capsys.readouterr().out

    def test_validate_reports_bad_monitor(self, tmp_path, capsys, restore_logging):
        path = tmp_path / "guardian.yml"
        path.write_text(VALID_CONFIG.replace("poolId: all", "poolId: everything"))

        assert main(["validate", "--config", str(path), "--log-level", "ERROR"]) == 1
        assert "poolId" in capsys.readouterr().err

    def test_missing_config_file(self, tmp_path, restore_logging):
        assert main(["run", "--config", str(tmp_path / "absent.yml"), "--log-level", "CRITICAL"]) == 1


class TestRunGuardians:
    """Tests for run_guardians."""

    @pytest.mark.asyncio
    async def test_starts_and_stops_every_guardian(self):
        guardians = {name: MagicMock(guardian_id=name, start=AsyncMock(), stop=AsyncMock()) for name in ("a", "b")}
        stop_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop_event.set)

        await run_guardians(guardians, stop_event)

        for guardian in guardians.values():
            guardian.start.assert_awaited_once()
            guardian.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_start_does_not_block_others(self):
        broken = MagicMock(guardian_id="broken", start=AsyncMock(side_effect=GuardianError("down")), stop=AsyncMock())
        healthy = MagicMock(guardian_id="healthy", start=AsyncMock(), stop=AsyncMock())
        stop_event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.05, stop_event.set)

        await run_guardians({"broken": broken, "healthy": healthy}, stop_event)

        healthy.start.assert_awaited_once()
        broken.stop.assert_awaited_once()
        healthy.stop.assert_awaited_once()
