import shlex
import sys

import pytest

from vhsmcan import launcher


@pytest.fixture
def spawned(monkeypatch):
    calls = []

    class FakeProcess:
        def __init__(self, args, **kwargs):
            self.args = args
            self.kwargs = kwargs
            self.returncode = None
            calls.append(self)

        def wait(self):
            self.returncode = 0
            return 0

        def poll(self):
            return self.returncode

        def terminate(self):
            self.returncode = -15

    monkeypatch.setattr(launcher.subprocess, "Popen", FakeProcess)
    return calls


def test_detect_terminal_prefers_term_program(monkeypatch):
    monkeypatch.setenv("TERM_PROGRAM", "kitty")
    assert launcher.detect_terminal() == "kitty"


def test_detect_terminal_finds_first_installed(monkeypatch):
    monkeypatch.delenv("TERM_PROGRAM", raising=False)
    installed = {"konsole", "kitty"}
    monkeypatch.setattr(
        launcher.shutil, "which", lambda name: f"/usr/bin/{name}" if name in installed else None
    )
    assert launcher.detect_terminal() == "konsole"


def test_detect_terminal_falls_back_to_xterm(monkeypatch):
    monkeypatch.delenv("TERM_PROGRAM", raising=False)
    monkeypatch.setattr(launcher.shutil, "which", lambda name: None)
    assert launcher.detect_terminal() == "xterm"


@pytest.mark.parametrize(
    "terminal", ["gnome-terminal", "konsole", "alacritty", "kitty", "xterm"]
)
def test_terminal_command_runs_bash(terminal):
    cmd = launcher.terminal_command(terminal, "Input ECU", "echo hi")
    assert cmd[0] == terminal
    assert "Input ECU" in cmd
    assert cmd[-3:] == ["bash", "-c", "echo hi"]


def test_terminal_command_xfce_quotes_command():
    run_cmd = "cd '/tmp/some dir' && echo it's"
    cmd = launcher.terminal_command("xfce4-terminal", "Output ECU", run_cmd)
    assert cmd[:3] == ["xfce4-terminal", "--title", "Output ECU"]
    assert shlex.split(cmd[-1]) == ["bash", "-c", run_cmd]


def test_terminal_command_unknown_uses_xterm():
    cmd = launcher.terminal_command("vscode", "CAN Bus Monitor", "true")
    assert cmd[:3] == ["xterm", "-title", "CAN Bus Monitor"]


def test_spawn_terminal_builds_component_command(spawned, tmp_path):
    launcher.spawn_terminal("konsole", tmp_path, "input_ecu")
    assert len(spawned) == 1
    args = spawned[0].args
    assert args[:3] == ["konsole", "--title", "Input ECU"]
    words = shlex.split(args[-1])
    assert words[:4] == ["cd", str(tmp_path), "&&", "VHSM_LAUNCH_MODE=other"[:0] + "VHSM_LAUNCH_MODE=input_ecu"]
    assert words[4:] == [sys.executable, "-m", "vhsmcan.launcher"]


def test_spawn_terminal_unknown_mode_title(spawned, tmp_path):
    launcher.spawn_terminal("xterm", tmp_path, "other")
    assert len(spawned) == 1
    args = spawned[0].args
    expected = launcher.terminal_command("xterm", "VHSM Component", args[-1])
    assert args == expected
    assert args[:3] == ["xterm", "-title", "VHSM Component"]
    assert "VHSM_LAUNCH_MODE=other" in shlex.split(args[-1])


def test_spawn_background_sets_mode(spawned):
    process = launcher.spawn_background("bus_server")
    assert len(spawned) == 1
    assert process is spawned[0]
    assert process.args == [sys.executable, "-m", "vhsmcan.launcher"]
    assert process.kwargs["env"]["VHSM_LAUNCH_MODE"] == "bus_server"
    assert process.kwargs["stdout"] == launcher.subprocess.DEVNULL


def test_main_unknown_mode_does_nothing(spawned, monkeypatch):
    monkeypatch.setenv("VHSM_LAUNCH_MODE", "not_a_component")
    assert launcher.main([]) == 0
    assert spawned == []


def test_main_launches_server_and_windows(spawned, monkeypatch, tmp_path, capsys):
    monkeypatch.delenv("VHSM_LAUNCH_MODE", raising=False)
    monkeypatch.setenv("TERM_PROGRAM", "konsole")
    monkeypatch.setattr(launcher.time, "sleep", lambda seconds: None)

    assert launcher.main(["--project-dir", str(tmp_path)]) == 0

    assert len(spawned) == 4
    assert spawned[0].kwargs["env"]["VHSM_LAUNCH_MODE"] == "bus_server"
    titles = [proc.args[2] for proc in spawned[1:]]
    assert titles == ["CAN Bus Monitor", "Input ECU", "Output ECU"]
    assert all(proc.args[0] == "konsole" for proc in spawned[1:])
    out = capsys.readouterr().out
    assert "All components launched!" in out
    assert "Detected terminal: konsole" in out