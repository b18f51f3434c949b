"""Starts the bus server and opens a terminal window for each bus component."""

from __future__ import annotations

import argparse
import os
import shlex
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import Callable, Optional, Union

from blessed import Terminal

from vhsmcan import bus_server, input_ecu, monitor, output_ecu

LAUNCH_MODE_ENV = "VHSM_LAUNCH_MODE"
FALLBACK_TERMINAL = "xterm"
KNOWN_TERMINALS = (
    "gnome-terminal",
    "konsole",
    "xfce4-terminal",
    "xterm",
    "alacritty",
    "kitty",
    "terminator",
)

SERVER_START_DELAY = 0.5
WINDOW_DELAY = 0.3

_TITLES = {
    "monitor": "CAN Bus Monitor",
    "input_ecu": "Input ECU",
    "output_ecu": "Output ECU",
}
_DEFAULT_TITLE = "VHSM Component"
_WINDOWS = (("monitor", "Monitor"), ("input_ecu", "Input ECU"), ("output_ecu", "Output ECU"))

_COMPONENTS: dict[str, Callable[[list[str]], int]] = {
    "bus_server": bus_server.main,
    "input_ecu": input_ecu.main,
    "output_ecu": output_ecu.main,
    "monitor": monitor.main,
}

_RULE = "═" * 63


def detect_terminal() -> str:
    """The terminal emulator to open windows in: $TERM_PROGRAM, else the first one installed."""
    program = os.environ.get("TERM_PROGRAM")
    if program:
        return program
    for candidate in KNOWN_TERMINALS:
        if shutil.which(candidate):
            return candidate
    return FALLBACK_TERMINAL


def terminal_command(terminal: str, title: str, run_cmd: str) -> list[str]:
    """Argument list that opens ``terminal`` titled ``title`` running ``run_cmd`` in bash."""
    if terminal == "gnome-terminal":
        return ["gnome-terminal", "--title", title, "--", "bash", "-c", run_cmd]
    if terminal == "konsole":
        return ["konsole", "--title", title, "-e", "bash", "-c", run_cmd]
    if terminal == "xfce4-terminal":
        return ["xfce4-terminal", "--title", title, "-e", f"bash -c {shlex.quote(run_cmd)}"]
    if terminal == "alacritty":
        return ["alacritty", "-t", title, "-e", "bash", "-c", run_cmd]
    if terminal == "kitty":
        return ["kitty", "--title", title, "bash", "-c", run_cmd]
    return ["xterm", "-title", title, "-e", "bash", "-c", run_cmd]


def _run_command(project_dir: Union[str, Path], mode: str) -> str:
    return (
        f"cd {shlex.quote(str(project_dir))} && {LAUNCH_MODE_ENV}={shlex.quote(mode)} "
        f"{shlex.quote(sys.executable)} -m vhsmcan.launcher"
    )


def spawn_terminal(
    terminal: str, project_dir: Union[str, Path], mode: str
) -> subprocess.Popen:
    """Open a new terminal window running the component ``mode`` from ``project_dir``."""
    title = _TITLES.get(mode, _DEFAULT_TITLE)
    return subprocess.Popen(terminal_command(terminal, title, _run_command(project_dir, mode)))


def spawn_background(mode: str) -> subprocess.Popen:
    """Run the component ``mode`` as a background process with its output discarded."""
    env = {**os.environ, LAUNCH_MODE_ENV: mode}
    return subprocess.Popen(
        [sys.executable, "-m", "vhsmcan.launcher"],
        env=env,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )


def _launch(project_dir: Path) -> int:
    term = Terminal(stream=sys.stdout)

    def say(text: str = "") -> None:
        print(text, flush=True)

    say(term.bold_cyan(_RULE))
    say(term.bold_cyan("Virtual CAN Bus with ARM-based ECU Emulators".center(63)))
    say(term.bold_cyan(_RULE))
    say()
    say(f"{term.green('→')} Initializing virtual CAN bus...")

    terminal = detect_terminal()
    say(f"{term.green('→')} Detected terminal: {term.bright_white(terminal)}")
    say(f"{term.green('→')} Launching components...")
    say()

    say(f"  {term.yellow('1.')} Starting CAN bus server...")
    server = spawn_background("bus_server")
    try:
        time.sleep(SERVER_START_DELAY)
        for number, (mode, label) in enumerate(_WINDOWS, start=2):
            say(f"  {term.yellow(f'{number}.')} Launching {label} terminal...")
            spawn_terminal(terminal, project_dir, mode)
            if number < len(_WINDOWS) + 1:
                time.sleep(WINDOW_DELAY)

        say()
        say(term.bold_green("✓ All components launched!"))
        say()
        say("Three terminal windows should now be open:")
        say(f"  • {term.cyan('CAN Bus Monitor')}")
        say(f"  • {term.green('Input ECU')}")
        say(f"  • {term.blue('Output ECU')}")
        say()
        say("Press 'q' in any window to quit that component.")
        say()
        say("The bus server will run until you stop it (Ctrl+C).")
        return server.wait()
    except KeyboardInterrupt:
        return 0
    except OSError as exc:
        print(f"{term.red('✗')} Failed to launch components: {exc}", file=sys.stderr)
        return 1
    finally:
        if server.poll() is None:
            server.terminate()
            server.wait()


def main(argv: Optional[list[str]] = None) -> int:
    mode = os.environ.get(LAUNCH_MODE_ENV)
    if mode is not None:
        runner = _COMPONENTS.get(mode)
        return runner([]) if runner is not None else 0

    parser = argparse.ArgumentParser(
        description="Start the bus server and open a window for each component."
    )
    parser.add_argument(
        "--project-dir",
        type=Path,
        default=Path.cwd(),
        help="directory the component windows start in",
    )
    args = parser.parse_args(argv)
    return _launch(args.project_dir)


if __name__ == "__main__":
    sys.exit(main())