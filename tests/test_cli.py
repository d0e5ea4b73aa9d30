"""tests for the command-line entrypoints."""

from datetime import date
from unittest.mock import Mock, patch

import pytest

from src.data.errors import ConfigurationError, SyncInProgressError
from src.data.records import SyncOutcome
from stargazers import cli


@pytest.fixture(autouse=True)
def quiet_logging():
    with patch("stargazers.cli.setup_logging"), patch("stargazers.cli.dotenv.load_dotenv"):
        yield


@pytest.fixture
def cli_store(store):
    with patch("stargazers.cli._store", return_value=store):
        yield store


def test_sync_historical_parses_dates_and_keys(capsys):
    sync = Mock()
    sync.sync_historical_apod.return_value = SyncOutcome(days_total=2, inserted=2, requests_made=1)

    with patch("stargazers.cli._historical_sync", return_value=sync):
        code = cli.main(["sync-historical", "2020-01-01", "2020-01-02", "--api-key", "a", "--api-key", "b"])

    assert code == 0
    sync.sync_historical_apod.assert_called_once_with(date(2020, 1, 1), date(2020, 1, 2), api_keys=["a", "b"])
    assert "2 inserted" in capsys.readouterr().out


def test_sync_historical_end_defaults_to_none():
    sync = Mock()
    sync.sync_historical_apod.return_value = SyncOutcome()

    with patch("stargazers.cli._historical_sync", return_value=sync):
        cli.main(["sync-historical", "2020-01-01"])

    sync.sync_historical_apod.assert_called_once_with(date(2020, 1, 1), None, api_keys=None)


def test_bad_date_is_usage_error():
    with pytest.raises(SystemExit) as exc:
        cli.main(["sync-historical", "01/01/2020"])

    assert exc.value.code == 2


@pytest.mark.parametrize(
    "error", [ConfigurationError("no api key"), SyncInProgressError("busy"), ValueError("start after end")]
)
def test_expected_errors_exit_1(error, capsys):
    sync = Mock()
    sync.sync_historical_apod.side_effect = error

    with patch("stargazers.cli._historical_sync", return_value=sync):
        code = cli.main(["sync-historical", "2020-01-01", "2020-01-02"])

    assert code == 1
    assert str(error) in capsys.readouterr().err


def test_sync_both_historical_summary(capsys):
    sync = Mock()
    sync.sync_both_historical.return_value = {
        "data": SyncOutcome(days_total=3, inserted=3, requests_made=1),
        "imagery": {"total": 3, "downloaded": 2, "failed": 1},
        "removed": 0,
    }

    with patch("stargazers.cli._historical_sync", return_value=sync):
        assert cli.main(["sync-both-historical", "2020-01-01", "2020-01-03"]) == 0

    out = capsys.readouterr().out
    assert "2 images downloaded" in out
    assert "0 duplicates removed" in out


def test_sync_single_feed_failure_exit_code(cli_store):
    with patch.object(cli.FeedSyncManager, "sync_cme_alerts", return_value={"status": "failure"}):
        assert cli.main(["sync", "cme"]) == 1

    with patch.object(cli.FeedSyncManager, "sync_space_weather", return_value={"status": "success"}):
        assert cli.main(["sync", "space-weather"]) == 0


def test_status_lists_feeds_and_historical_run(cli_store, capsys):
    cli_store.log_ingestion("historical_apod", status="success", duration=1.0, records_inserted=5)

    assert cli.main(["status"]) == 0

    out = capsys.readouterr().out
    for feed in ("cme", "flare", "geomag", "space_weather", "neo", "journal", "apod", "historical_apod"):
        assert feed in out
    assert "never" in out


def test_clear_cache(capsys):
    with patch("stargazers.cli.ResponseCache") as cache_cls:
        cache_cls.return_value.clear.return_value = 4
        assert cli.main(["clear-cache"]) == 0

    assert "Removed 4 cached responses" in capsys.readouterr().out


def test_logs(tmp_path, capsys):
    with patch("stargazers.cli.read_log_tail", return_value=["[2024-01-02 10:00:00] [INFO] cme sync success"]) as tail:
        assert cli.main(["logs", "--lines", "5"]) == 0

    tail.assert_called_once_with(lines=5)
    assert "cme sync success" in capsys.readouterr().out


def test_logs_empty(capsys):
    with patch("stargazers.cli.read_log_tail", return_value=[]):
        assert cli.main(["logs"]) == 0

    assert "No log entries yet" in capsys.readouterr().out


def test_sync_historical_start_defaults_to_configured_date():
    sync = Mock()
    sync.sync_historical_apod.return_value = SyncOutcome()

    with patch("stargazers.cli._historical_sync", return_value=sync):
        cli.main(["sync-historical"])

    start = sync.sync_historical_apod.call_args.args[0]
    assert start == cli._parse_date(cli.DataConfig.BACKFILL_START)
