"""Tests for the familycal CLI and the runner wiring behind it."""

import asyncio
import json

import pytest

from familycal.__main__ import main
from familycal.config_loader import Config
from familycal.runner import build_scheduler, build_transport, run_forever, run_once
from familycal.transport.console import LogNotificationTransport
from familycal.transport.webhook import WebhookNotificationTransport

pytestmark = pytest.mark.unit

RECORDS = [
    {
        "id": "swim",
        "title": "Swimming lesson",
        "start": "2025-01-06T09:00:00+09:00",
        "end": "2025-01-06T10:00:00+09:00",
        "person": "child_a",
        "recurrence": {"type": "weekly", "weekdays": [1, 3]},
        "notification_prefs": {"mom-phone": {"notify_on_start": True}},
    },
    {
        "id": "dinner",
        "title": "Family dinner",
        "start": "2025-01-07T18:00:00+09:00",
        "person": "all",
    },
    {
        "id": "meeting",
        "title": "Budget meeting",
        "start": "2025-01-08T14:00:00+09:00",
        "person": "parent_a",
    },
]


@pytest.fixture
def config_file(tmp_path):
    records = tmp_path / "records.json"
    records.write_text(json.dumps(RECORDS), encoding="utf-8")
    config = tmp_path / "familycal.yaml"
    config.write_text(
        f"records_path: {records}\n"
        "default_timezone: Asia/Seoul\n"
        "person_names:\n"
        "  child_a: Minji\n",
        encoding="utf-8",
    )
    return config


def test_expand_lists_occurrences_in_local_time(config_file, capsys):
    code = main(["--config", str(config_file), "expand", "--start", "2025-01-06", "--end", "2025-01-08"])

    lines = capsys.readouterr().out.splitlines()
    assert code == 0
    assert len(lines) == 4
    assert lines[0].startswith("2025-01-06 09:00  Minji")
    assert lines[0].endswith("(swim_20250106)")
    assert "Family dinner" in lines[1]
    assert lines[2].endswith("(swim_20250108)")
    assert "Budget meeting" in lines[3]


def test_expand_person_filter_keeps_family_wide(config_file, capsys):
    main(
        [
            "--config", str(config_file), "expand",
            "--start", "2025-01-06", "--end", "2025-01-08", "--person", "child_a",
        ]
    )

    out = capsys.readouterr().out
    assert "Swimming lesson" in out
    assert "Family dinner" in out
    assert "Budget meeting" not in out


def test_invalid_date_is_rejected(capsys):
    with pytest.raises(SystemExit):
        main(["expand", "--start", "06/01/2025", "--end", "2025-01-08"])

    assert "invalid date" in capsys.readouterr().err


def test_notify_once_uses_test_time(config_file, monkeypatch, capsys):
    # 10 minutes before the 09:00 KST lesson
    monkeypatch.setenv("FAMILYCAL_TEST_TIME", "2025-01-06T08:50:00+09:00")

    assert main(["--config", str(config_file), "notify-once"]) == 0

    assert "Sent 1 notification(s)" in capsys.readouterr().out


def test_build_transport_prefers_webhook():
    assert isinstance(build_transport(Config()), LogNotificationTransport)
    assert isinstance(
        build_transport(Config(webhook_url="http://hook.local/send")), WebhookNotificationTransport
    )


def test_build_scheduler_applies_config(tmp_path):
    cfg = Config(
        flag_store_path=str(tmp_path / "flags.json"),
        flag_ttl_hours=6,
        max_occurrences=10,
        notifications_enabled=False,
    )

    scheduler = build_scheduler(cfg)

    assert scheduler.enabled is False
    assert scheduler.flag_store.ttl.total_seconds() == 6 * 3600
    assert scheduler.expander.max_occurrences == 10


async def test_run_once_with_empty_storage():
    assert await run_once(Config()) == 0


async def test_run_forever_stops_on_event(fake_clock):
    stop = asyncio.Event()
    task = asyncio.create_task(run_forever(Config(), clock=fake_clock, stop_event=stop))

    for _ in range(3):
        await asyncio.sleep(0)
    stop.set()
    await asyncio.wait_for(task, timeout=1)

    assert fake_clock.sleeps
    assert set(fake_clock.sleeps) == {60}
