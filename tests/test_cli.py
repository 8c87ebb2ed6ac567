from datetime import datetime

import pytest

from cryptoprime.primes import cli


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("CRYPTOPRIME_MODE", "CRYPTOPRIME_SERVER_URL", "CRYPTOPRIME_WORKER", "CRYPTOPRIME_REMOTE"):
        monkeypatch.delenv(name, raising=False)


def test_cooperative_run_with_export(tmp_path, capsys):
    out = tmp_path / "primes.txt"
    rc = cli.main(["--digits", "6", "--count", "4", "--mode", "cooperative",
                   "--show", "2", "--verify", "--output", str(out)])
    assert rc == 0
    stdout = capsys.readouterr().out
    assert "Prime 1:" in stdout and "Prime 2:" in stdout and "Prime 3:" not in stdout
    assert "Substrate: cooperative" in stdout
    assert "Verified (sympy): 4/4" in stdout

    text = out.read_text(encoding="utf-8")
    assert text.startswith("CryptoPrime Generator\n")
    assert "Total Primes: 4\n" in text
    assert "Digit Length: 6\n" in text
    rows = [l for l in text.splitlines() if l.startswith("Prime ")]
    assert len(rows) == 4
    assert all(len(r.split(": ")[1]) == 6 for r in rows)


def test_unreachable_server_falls_back(capsys, monkeypatch):
    monkeypatch.setenv("CRYPTOPRIME_WORKER", "0")
    rc = cli.main(["--digits", "3", "--count", "2", "--mode", "remote",
                   "--server-url", "http://127.0.0.1:9/api/primes", "--show", "0"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "Substrate: cooperative" in out
    assert "Primes received: 2" in out


def test_generation_failure_exit_code(capsys, monkeypatch):
    monkeypatch.setenv("CRYPTOPRIME_WORKER", "0")
    monkeypatch.setenv("CRYPTOPRIME_REMOTE", "0")
    rc = cli.main(["--digits", "1", "--count", "4"])
    assert rc == 1
    assert "Could not find 4 primes" in capsys.readouterr().err


@pytest.mark.parametrize("argv", [
    ["--digits", "0", "--count", "1"],
    ["--digits", "501", "--count", "1"],
    ["--digits", "5", "--count", "101"],
    ["--digits", "x", "--count", "1"],
    ["--digits", "5", "--count", "1", "--mode", "gpu"],
])
def test_rejects_out_of_range_input(argv):
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    assert exc.value.code == 2


def test_bad_environment_exit_code(monkeypatch, capsys):
    monkeypatch.setenv("CRYPTOPRIME_PORT", "nope")
    assert cli.main(["--digits", "3", "--count", "1"]) == 2
    assert "CRYPTOPRIME_PORT" in capsys.readouterr().err


def test_format_export():
    text = cli.format_export([11, 13], 2, 1.234, datetime(2024, 5, 1, 12, 30, 0))
    assert text == (
        "CryptoPrime Generator\n"
        "Generated: 2024-05-01 12:30:00\n"
        "Total Primes: 2\n"
        "Digit Length: 2\n"
        "Generation Time: 1.23 seconds\n"
        + "=" * 50 + "\n\n"
        "Prime 1: 11\n"
        "Prime 2: 13\n"
    )
