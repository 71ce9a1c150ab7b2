import json

import httpx
import pytest

from conftest import ScriptedTransport, audio_response
from narration_ms import cli


@pytest.fixture
def cli_settings(tmp_path, monkeypatch):
    """Settings file with fast retries and a test key."""
    path = tmp_path / "settings.yaml"
    path.write_text(
        "provider:\n"
        "  api_key: cli-key\n"
        "request:\n"
        "  timeout_ms: 1000\n"
        "  retry:\n"
        "    max_retries: 0\n"
        "    base_delay_ms: 0\n"
        "text:\n"
        "  max_length: 30\n"
        "  warning_length: 20\n",
        encoding="utf-8",
    )
    return str(path)


def test_cli_dry_run(capsys):
    code = cli.main(["--text", "dry run test", "--dry-run"])
    assert code == 0
    out = capsys.readouterr().out
    assert "DRY_RUN_OK" in out


def test_cli_dry_run_json_reports_truncation(capsys, cli_settings):
    code = cli.main([
        "Hello there. This text is longer than thirty characters.",
        "--dry-run", "--json", "--settings", cli_settings,
    ])
    assert code == 0
    lines = capsys.readouterr().out.strip().splitlines()
    payload = json.loads(lines[-2])
    item = payload["items"][0]
    assert item["valid"] is True
    assert item["truncated"] is True
    assert item["processed_len"] == len("Hello there.")
    assert lines[-1] == "DRY_RUN_OK"


def test_cli_dry_run_rejects_blank(capsys):
    code = cli.main(["--text", "   ", "--dry-run"])
    assert code == 2
    assert "DRY_RUN_INVALID" in capsys.readouterr().out


def test_cli_requires_text():
    with pytest.raises(SystemExit):
        cli.main(["--dry-run"])


def test_cli_missing_key(capsys, tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("", encoding="utf-8")
    code = cli.main(["--text", "hi", "--settings", str(empty), "--out", str(tmp_path / "o.mp3")])
    assert code == 2
    assert "[CONFIG]" in capsys.readouterr().out


def test_cli_missing_settings_file(capsys, tmp_path):
    code = cli.main(["--text", "hi", "--settings", str(tmp_path / "nope.yaml"), "--out", str(tmp_path / "o.mp3")])
    assert code == 2
    out = capsys.readouterr().out
    assert "[CONFIG]" in out
    assert "nope.yaml" in out


def test_cli_synth_writes_mp3(capsys, tmp_path, cli_settings):
    transport = ScriptedTransport(audio_response(8000))
    out_path = tmp_path / "out.mp3"

    code = cli.main(["--text", "Hello.", "--out", str(out_path), "--settings", cli_settings], transport=transport.transport())

    assert code == 0
    assert out_path.read_bytes()[:4] == b"\xff\xfb\x90\x44"
    assert out_path.stat().st_size == 8000
    assert transport.body()["text"] == "Hello."
    assert "CLI_OK" in capsys.readouterr().out


def test_cli_batch(tmp_path, cli_settings):
    inputs = tmp_path / "inputs.txt"
    inputs.write_text("First line.\n\nSecond line.\n", encoding="utf-8")
    out_dir = tmp_path / "batch"
    transport = ScriptedTransport(audio_response(1000))

    code = cli.main(
        ["--file", str(inputs), "--out", str(out_dir), "--settings", cli_settings],
        transport=transport.transport(),
    )

    assert code == 0
    assert sorted(p.name for p in out_dir.iterdir()) == ["item_001.mp3", "item_002.mp3"]
    assert transport.calls == 2


def test_cli_provider_error_exit_code(capsys, tmp_path, cli_settings):
    transport = ScriptedTransport(httpx.Response(401, json={"detail": "bad key"}))

    code = cli.main(
        ["--text", "Hello.", "--out", str(tmp_path / "x.mp3"), "--json", "--settings", cli_settings],
        transport=transport.transport(),
    )

    assert code == 1
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["error"] == "PROVIDER_REJECTED"


def test_cli_voices(capsys, cli_settings):
    transport = ScriptedTransport(httpx.Response(200, json={"voices": [{"voice_id": "v1", "name": "Rachel"}]}))

    code = cli.main(["--voices", "--json", "--settings", cli_settings], transport=transport.transport())

    assert code == 0
    payload = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert payload["voices"][0]["id"] == "v1"
