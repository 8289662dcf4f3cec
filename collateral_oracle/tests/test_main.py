"""Unit tests for the CLI entry point."""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from collateral_oracle import main as cli

ORACLE = "0x" + "0f" * 20
PRIVATE_KEY = "0x" + "11" * 32

ENV_VARS = [
    "NETWORK",
    "RPC_URL",
    "DOMA_SUBGRAPH_URL",
    "DOMA_API_KEY",
    "DOMA_RANK_ORACLE_ADDRESS",
    "ORACLE_UPDATER_PRIVATE_KEY",
    "UPDATE_INTERVAL_MS",
    "CRYPTO_UPDATE_INTERVAL_MS",
    "MAX_TOKENS_PER_RUN",
    "DELAY_BETWEEN_UPDATES_MS",
    "MIN_PRICE_CHANGE_PERCENT",
    "CRYPTO_API_URL",
    "CRYPTO_API_KEY",
    "CONFIRMATION_TIMEOUT",
    "FETCH_TIMEOUT",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestParser:
    """Test argument parsing."""

    def test_defaults(self) -> None:
        args = cli.build_parser().parse_args([])
        assert args.network == "doma-testnet"
        assert args.subgraph_url == cli.DEFAULT_SUBGRAPH_URL
        assert args.oracle_address is None
        assert args.interval == 600000
        assert args.crypto_interval == 1800000
        assert args.max_tokens == 50
        assert args.update_delay == 2000
        assert args.min_change == 1.0
        assert args.confirmation_timeout == 120.0
        assert args.fetch_timeout == 10.0
        assert not args.once
        assert not args.no_crypto

    def test_environment_defaults(self, monkeypatch) -> None:
        """Environment variables provide the defaults."""
        monkeypatch.setenv("DOMA_RANK_ORACLE_ADDRESS", ORACLE)
        monkeypatch.setenv("UPDATE_INTERVAL_MS", "30000")
        monkeypatch.setenv("MIN_PRICE_CHANGE_PERCENT", "2.5")
        args = cli.build_parser().parse_args([])
        assert args.oracle_address == ORACLE
        assert args.interval == 30000
        assert args.min_change == 2.5

    def test_cli_overrides_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("MAX_TOKENS_PER_RUN", "10")
        args = cli.build_parser().parse_args(["--max-tokens", "5"])
        assert args.max_tokens == 5


class TestValidateArgs:
    """Test configuration validation."""

    def test_missing_oracle_address(self) -> None:
        parser = cli.build_parser()
        with pytest.raises(SystemExit) as exc_info:
            cli.validate_args(parser, parser.parse_args([]))
        assert exc_info.value.code == 2

    def test_invalid_oracle_address(self) -> None:
        parser = cli.build_parser()
        with pytest.raises(SystemExit):
            cli.validate_args(parser, parser.parse_args(["--oracle-address", "0x12"]))

    def test_invalid_interval(self) -> None:
        parser = cli.build_parser()
        args = parser.parse_args(["--oracle-address", ORACLE, "--interval", "0"])
        with pytest.raises(SystemExit):
            cli.validate_args(parser, args)

    def test_valid(self) -> None:
        parser = cli.build_parser()
        cli.validate_args(parser, parser.parse_args(["--oracle-address", ORACLE]))


class TestBuildOrchestrator:
    """Test component wiring."""

    def test_wiring(self) -> None:
        """Millisecond settings are converted to seconds."""
        args = cli.build_parser().parse_args(
            ["--oracle-address", ORACLE, "--update-delay", "500", "--interval", "60000"]
        )
        orchestrator = cli.build_orchestrator(args, PRIVATE_KEY)

        assert orchestrator.broadcaster.delay_between_updates == 0.5
        assert orchestrator.broadcaster.signer.receipt_timeout == 120.0
        assert orchestrator.domain_scheduler.interval == 60.0
        assert orchestrator.crypto_scheduler.interval == 1800.0
        assert orchestrator.max_tokens == 50
        assert orchestrator.collector.discovery.url == cli.DEFAULT_SUBGRAPH_URL

    def test_no_crypto(self) -> None:
        args = cli.build_parser().parse_args(["--oracle-address", ORACLE, "--no-crypto"])
        orchestrator = cli.build_orchestrator(args, PRIVATE_KEY)
        assert orchestrator.crypto_source is None
        assert orchestrator.crypto_scheduler is None


class TestMain:
    """Test process exit behavior."""

    def test_missing_private_key(self, monkeypatch) -> None:
        """A missing signer key exits with status 2."""
        monkeypatch.setattr(sys, "argv", ["oracle", "--oracle-address", ORACLE])
        with pytest.raises(SystemExit) as exc_info:
            cli.main()
        assert exc_info.value.code == 2

    def test_once(self, monkeypatch) -> None:
        """--once runs a single pass and returns normally."""
        monkeypatch.setenv("ORACLE_UPDATER_PRIVATE_KEY", PRIVATE_KEY)
        monkeypatch.setattr(sys, "argv", ["oracle", "--oracle-address", ORACLE, "--once"])
        orchestrator = MagicMock()
        orchestrator.run_once = AsyncMock(return_value={"domain": {}})

        with patch.object(cli, "build_orchestrator", return_value=orchestrator):
            cli.main()

        orchestrator.run_once.assert_awaited_once()
        orchestrator.run.assert_not_called()

    def test_keyboard_interrupt_exits_cleanly(self, monkeypatch) -> None:
        monkeypatch.setenv("ORACLE_UPDATER_PRIVATE_KEY", PRIVATE_KEY)
        monkeypatch.setattr(sys, "argv", ["oracle", "--oracle-address", ORACLE])

        with patch.object(cli, "build_orchestrator", side_effect=KeyboardInterrupt):
            cli.main()

    def test_fatal_error_exits_1(self, monkeypatch) -> None:
        monkeypatch.setenv("ORACLE_UPDATER_PRIVATE_KEY", PRIVATE_KEY)
        monkeypatch.setattr(sys, "argv", ["oracle", "--oracle-address", ORACLE])

        with patch.object(cli, "build_orchestrator", side_effect=RuntimeError("boom")):
            with pytest.raises(SystemExit) as exc_info:
                cli.main()
        assert exc_info.value.code == 1
