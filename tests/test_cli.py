import sys
import types

import pytest

from adaptive_quiz import cli


@pytest.fixture(autouse=True)
def reset_metadata(monkeypatch):
    """Ensure metadata.version is controllable during tests."""

    def fake_version(name: str) -> str:
        assert name == "adaptive-quiz"
        return "0.0-test"

    monkeypatch.setattr(cli.metadata, "version", fake_version)
    yield


def test_version_command_handles_missing_package(monkeypatch, capsys):
    monkeypatch.setattr(
        cli.metadata,
        "version",
        lambda name: (_ for _ in ()).throw(cli.metadata.PackageNotFoundError()),
    )
    code = cli.main(["version"])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.strip() == "unknown"


def test_no_args_prints_usage_and_returns_error(capsys):
    code = cli.main([])
    captured = capsys.readouterr()
    assert code == 2
    assert "Usage: adaptive-quiz" in captured.out
    assert "Available commands:" in captured.out


def test_help_flag_shows_usage(capsys):
    code = cli.main(["--help"])
    captured = capsys.readouterr()
    assert code == 0
    assert "Usage: adaptive-quiz" in captured.out


def test_list_outputs_command_table(capsys):
    code = cli.main(["list"])
    captured = capsys.readouterr()
    assert code == 0
    assert "init" in captured.out
    assert "quiz" in captured.out
    assert "(TUI)" in captured.out


def test_help_known_command(capsys):
    code = cli.main(["help", "quiz"])
    captured = capsys.readouterr()
    assert code == 0
    assert "Run `adaptive-quiz quiz --help`" in captured.out


def test_help_unknown_command(capsys):
    code = cli.main(["help", "does-not-exist"])
    captured = capsys.readouterr()
    assert code == 2
    assert "Unknown command" in captured.err
    assert "Available commands:" in captured.err


@pytest.mark.parametrize("flag", ["version", "--version", "-V"])
def test_version_variants(flag, capsys):
    code = cli.main([flag])
    captured = capsys.readouterr()
    assert code == 0
    assert captured.out.strip() == "0.0-test"


def test_unknown_command_errors(capsys):
    code = cli.main(["bogus"])
    captured = capsys.readouterr()
    assert code == 2
    assert "Unknown command" in captured.err


def test_dispatch_invokes_module_main_with_passthrough(monkeypatch):
    before = list(sys.argv)
    captured: dict[str, list[str]] = {}

    def fake_import(module_name: str):
        assert module_name == "adaptive_quiz.quizzer._main"

        def stub_main(argv):
            captured["argv"] = list(argv)
            captured["sys_argv"] = list(sys.argv)
            return 7

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    code = cli.main(["quiz", "stats", "--top", "3"])
    assert code == 7
    assert captured["argv"] == ["stats", "--top", "3"]
    assert captured["sys_argv"][0] == "adaptive-quiz quiz"
    assert list(sys.argv) == before


def test_dispatch_supports_main_without_parameters(monkeypatch):
    called = {"count": 0}

    def fake_import(module_name: str):
        def stub_main():
            called["count"] += 1
            assert sys.argv[0] == "adaptive-quiz init"

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    code = cli.main(["init"])
    assert code == 0
    assert called["count"] == 1


@pytest.mark.parametrize(
    ("exit_value", "expected"), [(5, 5), (None, 0), ("boom", 1)]
)
def test_dispatch_normalizes_system_exit(monkeypatch, capsys, exit_value, expected):
    def fake_import(module_name: str):
        def stub_main(argv):
            raise SystemExit(exit_value)

        return types.SimpleNamespace(main=stub_main)

    monkeypatch.setattr(cli, "import_module", fake_import)
    code = cli.main(["quiz"])
    assert code == expected
    if exit_value == "boom":
        assert capsys.readouterr().err.strip() == "boom"


def test_quiz_help_exits_cleanly(capsys):
    code = cli.main(["quiz", "--help"])
    captured = capsys.readouterr()
    assert code == 0
    assert "start" in captured.out


def test_cli_runs_init_end_to_end(tmp_path, capsys):
    target = tmp_path / "workspace"

    code = cli.main(["init", "--path", str(target)])

    captured = capsys.readouterr()
    assert code == 0
    assert "Workspace ready" in captured.out
    for entry in ("config", "logs", "weights"):
        assert (target / entry).is_dir()


def test_cli_init_quiet(tmp_path, capsys):
    code = cli.main(["init", "--path", str(tmp_path / "ws"), "--quiet"])

    assert code == 0
    assert capsys.readouterr().out == ""


def test_cli_init_reports_workspace_error(tmp_path, capsys):
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")

    code = cli.main(["init", "--path", str(blocker)])

    assert code == 2
    assert "not a directory" in capsys.readouterr().err


def test_cli_runs_quiz_init_config(tmp_path, capsys):
    destination = tmp_path / "quiz.toml"

    code = cli.main(["quiz", "init-config", "--path", str(destination)])

    assert code == 0
    assert destination.read_text(encoding="utf-8").startswith(
        "# Adaptive quiz configuration"
    )
    assert "Created template" in capsys.readouterr().out
