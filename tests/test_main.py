"""
Tests for the command-line entry point.
"""
import json
from unittest.mock import AsyncMock, patch

import pytest

from contact_loader import main as cli
from contact_loader.core.schemas import ImportResult, ImportStats
from contact_loader.setup.config import AppConfig, ImportConfig


class TestArgumentParsing:

    def test_defaults(self):
        args = cli.build_parser().parse_args(["contacts.csv"])
        assert args.file == "contacts.csv"
        assert args.create_schema is False
        assert args.mode is None

    def test_overrides_are_revalidated(self):
        args = cli.build_parser().parse_args(
            ["contacts.csv", "--mode", "per_record", "--batch-size", "200", "--max-retries", "1", "--delimiter", ";"]
        )
        config = cli.apply_overrides(AppConfig(), args)
        assert config.importing.write_mode == "per_record"
        assert config.importing.initial_batch_size == 200
        assert config.importing.max_retries == 1
        assert config.importing.delimiter == ";"

    def test_out_of_band_batch_size_is_rejected(self):
        args = cli.build_parser().parse_args(["contacts.csv", "--batch-size", "5000"])
        with pytest.raises(ValueError):
            cli.apply_overrides(AppConfig(importing=ImportConfig()), args)

    def test_no_overrides_returns_same_config(self):
        config = AppConfig()
        args = cli.build_parser().parse_args(["contacts.csv"])
        assert cli.apply_overrides(config, args) is config

    def test_unknown_mode(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args(["contacts.csv", "--mode", "copy"])


class TestMain:

    def test_success_exit_code(self, capsys):
        result = ImportResult(success=True, stats=ImportStats(total=2, valid=2, persisted=2))
        with patch.object(cli, "get_config", return_value=AppConfig()), \
                patch.object(cli, "run_import", new=AsyncMock(return_value=result)) as run_import:
            code = cli.main(["contacts.csv"])

        assert code == 0
        run_import.assert_awaited_once()
        assert run_import.await_args.args[1] == "contacts.csv"
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is True
        assert output["stats"]["persisted"] == 2

    def test_failure_exit_code(self, capsys):
        result = ImportResult(success=False, error="Missing required columns: first_name")
        with patch.object(cli, "get_config", return_value=AppConfig()), \
                patch.object(cli, "run_import", new=AsyncMock(return_value=result)):
            code = cli.main(["contacts.csv"])

        assert code == 1
        assert json.loads(capsys.readouterr().out)["error"] == "Missing required columns: first_name"

    def test_schema_failure_stops_before_import(self, capsys):
        with patch.object(cli, "get_config", return_value=AppConfig()), \
                patch.object(cli, "create_schema", return_value=False), \
                patch.object(cli, "run_import", new=AsyncMock()) as run_import:
            code = cli.main(["contacts.csv", "--create-schema"])

        assert code == 1
        run_import.assert_not_awaited()
        output = json.loads(capsys.readouterr().out)
        assert output["success"] is False
        assert output["error"] == "Unable to prepare database schema"
        assert output["stats"]["total"] == 0


class TestRunImport:

    @pytest.mark.asyncio
    async def test_connection_failure(self):
        with patch.object(cli.AsyncpgStorage, "connect", new=AsyncMock(side_effect=ConnectionRefusedError())):
            result = await cli.run_import(AppConfig(), "contacts.csv")
        assert result.success is False
        assert result.error == "Unable to connect to database"

    @pytest.mark.asyncio
    async def test_closes_storage(self, storage, csv_file_factory):
        storage.close = AsyncMock()
        path = csv_file_factory(["email", "first_name"], [["a@example.com", "Ann"]])
        config = AppConfig(importing=ImportConfig(stall_notice_seconds=0, backoff_jitter_seconds=0))

        with patch.object(cli.AsyncpgStorage, "connect", new=AsyncMock(return_value=storage)):
            result = await cli.run_import(config, path)

        assert result.success is True
        assert storage.rows == {"a@example.com": ("Ann", None)}
        storage.close.assert_awaited_once()
