#!/usr/bin/env python3
"""decision_maker.py - The Executive Decision Maker, in your terminal.

Think of a yes/no question and press Enter.  The six answer lamps shuffle
for a moment, then one of them, picked at random, stays lit.

Usage:
    python decision_maker.py
    python decision_maker.py --seed 42

Keys:
    Enter / Space    ask (or close help)
    Ctrl+H           toggle help
    q / Esc          quit (Esc closes help first)
    Ctrl+C           quit immediately
"""

from __future__ import annotations

import argparse
import atexit
import contextlib
import enum
import logging
import os
import random
import shutil
import signal
import sys
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from typing import TextIO

_IS_WINDOWS = os.name == "nt"

if not _IS_WINDOWS:
    import select
    import termios
    import tty

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_VERSION = "1.0.0"

EXIT_SUCCESS = 0
EXIT_FAILURE = 1

TICK_SECONDS = 0.05
N_STEPS = 30  # 1.5 s of shuffling at TICK_SECONDS

_READ_CHUNK = 64
_ESC_GRACE_SECONDS = 0.025

_ESC_CLEAR = "\033[2J"
_ESC_HOME = "\033[H"
_ESC_HIDE_CURSOR = "\033[?25l"
_ESC_SHOW_CURSOR = "\033[?25h"
_ESC_CLEAR_LINE = "\033[K"
_ESC_CLEAR_BELOW = "\033[J"
_ESC_ENTER_ALT_SCREEN = "\033[?1049h"
_ESC_LEAVE_ALT_SCREEN = "\033[?1049l"

_SGR_RESET = "\033[0m"
_SGR_TITLE = "\033[1;33m"
_SGR_LIT = "\033[1;30;102m"
_SGR_DARK = "\033[37;100m"
_SGR_HINT = "\033[36m"
_SGR_HELP = "\033[33m"

_BUTTON_WIDTH = 13
_BUTTON_GAP = "  "
_BUTTONS_PER_ROW = 3
_PANEL_WIDTH = _BUTTON_WIDTH * _BUTTONS_PER_ROW + len(_BUTTON_GAP) * (
    _BUTTONS_PER_ROW - 1
)
_PROGRESS_CELLS = 12

_TITLE = "EXECUTIVE DECISION MAKER"
_BRAND = " Radio Shack "
_HINTS = "Enter/Space: Ask  |  Ctrl+H: Help  |  q/Esc: Quit"

_HELP_LINES: tuple[str, ...] = (
    "How to play:",
    "  Think of a yes/no question, then press Enter or Space.",
    "  The lamps shuffle for a moment and one answer stays lit.",
    "",
    "Controls:",
    "  Enter / Space    Ask (or close this help)",
    "  Ctrl+H           Toggle help",
    "  q / Esc          Quit (Esc closes help first)",
    "  Ctrl+C           Quit immediately",
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DecisionMakerError(Exception):
    """Base class for errors raised by the decision maker."""


class TerminalUnavailable(DecisionMakerError):
    """The process has no terminal it can put into raw mode."""


class RestoreFailure(DecisionMakerError):
    """The terminal could not be returned to its original configuration."""


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------


class Answer(enum.Enum):
    """The six lamps, exactly as printed on the original device."""

    DEFINITELY = "DEFINITELY"
    FORGET_IT = "FORGET IT"
    ASK_AGAIN = "ASK AGAIN"
    NEVER = "NEVER"
    POSSIBLY = "POSSIBLY"
    WHY_NOT = "WHY NOT"


ANSWERS: tuple[Answer, ...] = tuple(Answer)


class Key(enum.Enum):
    """Key presses the state machine understands."""

    ENTER = "enter"
    SPACE = "space"
    CTRL_H = "ctrl+h"
    ESCAPE = "escape"
    QUIT = "q"
    CTRL_C = "ctrl+c"


_ASK_KEYS = frozenset({Key.ENTER, Key.SPACE})
_EXIT_KEYS = frozenset({Key.QUIT, Key.CTRL_C})
_DISMISS_HELP_KEYS = frozenset({Key.CTRL_H, Key.ESCAPE, Key.ENTER, Key.SPACE})


@dataclass(frozen=True)
class Idle:
    """Waiting for a question."""


@dataclass(frozen=True)
class Animating:
    """Lamps are shuffling; ``progress`` counts ticks since the ask."""

    progress: int


@dataclass(frozen=True)
class Result:
    """One answer is lit and stays lit until the next ask."""

    chosen: Answer


@dataclass(frozen=True)
class HelpOverlay:
    """Help is shown on top of ``previous``, which resumes on dismissal."""

    previous: State


State = Idle | Animating | Result | HelpOverlay


@dataclass(frozen=True)
class AppConfig:
    """Immutable configuration for a single run."""

    seed: int | None


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def draw_answer(rng: random.Random) -> Answer:
    """Pick one answer uniformly at random."""
    return rng.choice(ANSWERS)


def handle_key(state: State, key: Key) -> State | None:
    """Apply a key press to ``state``.

    Args:
        state: Current state.
        key: Decoded key press.

    Returns:
        The successor state, or None when the key asks the program to exit.

    """
    if key in _EXIT_KEYS:
        return None

    if isinstance(state, HelpOverlay):
        if key in _DISMISS_HELP_KEYS:
            return state.previous
        return state

    if key is Key.ESCAPE:
        return None
    if key is Key.CTRL_H:
        return HelpOverlay(previous=state)
    if key in _ASK_KEYS and isinstance(state, (Idle, Result)):
        return Animating(progress=0)
    return state


def handle_tick(state: State, rng: random.Random) -> State:
    """Advance the shuffle by one tick.

    The answer is drawn on the tick that completes ``N_STEPS``, so a fresh
    ``Animating(0)`` lands after exactly ``N_STEPS`` ticks.  Ticks outside
    ``Animating`` (including while help covers an animation) do nothing.
    """
    if not isinstance(state, Animating):
        return state
    if state.progress + 1 < N_STEPS:
        return Animating(progress=state.progress + 1)
    chosen = draw_answer(rng)
    logger.debug("Landed on %s", chosen.value)
    return Result(chosen=chosen)


def highlighted(state: State) -> Answer | None:
    """Return the answer whose lamp is lit in ``state``, if any."""
    if isinstance(state, Animating):
        return ANSWERS[state.progress % len(ANSWERS)]
    if isinstance(state, Result):
        return state.chosen
    if isinstance(state, HelpOverlay):
        return highlighted(state.previous)
    return None


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _centered(plain_width: int, styled: str, width: int) -> str:
    return " " * max(0, (width - plain_width) // 2) + styled


def _title_panel(width: int) -> list[str]:
    inner = _PANEL_WIDTH - 2
    top = "+-" + _BRAND + "-" * (inner - len(_BRAND) - 1) + "+"
    middle = "|" + _SGR_TITLE + _TITLE.center(inner) + _SGR_RESET + "|"
    bottom = "+" + "-" * inner + "+"
    return [
        _centered(_PANEL_WIDTH, top, width),
        _centered(_PANEL_WIDTH, middle, width),
        _centered(_PANEL_WIDTH, bottom, width),
    ]


def _button(answer: Answer, lit: bool) -> str:
    style = _SGR_LIT if lit else _SGR_DARK
    return f"{style}{answer.value:^{_BUTTON_WIDTH}}{_SGR_RESET}"


def _button_rows(lit: Answer | None, width: int) -> list[str]:
    rows: list[str] = []
    for start in range(0, len(ANSWERS), _BUTTONS_PER_ROW):
        row = ANSWERS[start : start + _BUTTONS_PER_ROW]
        styled = _BUTTON_GAP.join(_button(a, a is lit) for a in row)
        rows.append(_centered(_PANEL_WIDTH, styled, width))
        rows.append("")
    return rows


def _progress_bar(progress: int) -> str:
    filled = min(_PROGRESS_CELLS, progress * _PROGRESS_CELLS // N_STEPS)
    return "[" + "#" * filled + "." * (_PROGRESS_CELLS - filled) + "]"


def _footer(state: State) -> str:
    if isinstance(state, HelpOverlay):
        return _footer(state.previous)
    if isinstance(state, Animating):
        return f"Consulting the oracle {_progress_bar(state.progress)}"
    if isinstance(state, Result):
        return f"The answer is: {state.chosen.value}  |  {_HINTS}"
    return _HINTS


def _help_panel(width: int) -> list[str]:
    inner = max(len(line) for line in _HELP_LINES) + 2
    top = "+- Help " + "-" * (inner - len(" Help ") - 1) + "+"
    bottom = "+" + "-" * inner + "+"
    body = [
        "|" + _SGR_HELP + f" {line:<{inner - 1}}" + _SGR_RESET + "|"
        for line in ("", *_HELP_LINES, "")
    ]
    return [_centered(inner + 2, line, width) for line in (top, *body, bottom)]


def render_frame(state: State, width: int) -> list[str]:
    """Render ``state`` as one ANSI-styled string per screen row.

    Pure function of its arguments; the session decides where the rows go.
    A help overlay replaces the answer grid of the state it covers, keeping
    its title and footer.
    """
    base = state.previous if isinstance(state, HelpOverlay) else state
    footer = _footer(base)
    lines = [
        "",
        *_title_panel(width),
        "",
        *_button_rows(highlighted(base), width),
        _centered(len(footer), _SGR_HINT + footer + _SGR_RESET, width),
    ]

    if isinstance(state, HelpOverlay):
        # Title stays; the panel replaces the answer grid above the footer.
        lines = [*lines[:4], "", *_help_panel(width), "", lines[-1]]

    return lines


# ---------------------------------------------------------------------------
# Key decoding
# ---------------------------------------------------------------------------

_KEY_CHARS: dict[str, Key] = {
    "\r": Key.ENTER,
    "\n": Key.ENTER,
    " ": Key.SPACE,
    "\x08": Key.CTRL_H,
    "\x03": Key.CTRL_C,
    "q": Key.QUIT,
    "Q": Key.QUIT,
}


def _skip_escape_sequence(text: str, start: int) -> int:
    """Return the index just past the CSI/SS3 sequence introduced at ``start``."""
    introducer = text[start + 1]
    if introducer == "O":
        return min(len(text), start + 3)
    # CSI: parameter bytes until a final byte in @..~
    index = start + 2
    while index < len(text) and not "@" <= text[index] <= "~":
        index += 1
    return min(len(text), index + 1)


def decode_keys(text: str) -> list[Key]:
    """Decode raw terminal input into key presses.

    Arrow keys, function keys and anything else unmapped are dropped.  A lone
    ESC (not followed by ``[`` or ``O``) is the Escape key.
    """
    keys: list[Key] = []
    index = 0
    while index < len(text):
        char = text[index]
        if char == "\x1b":
            if text[index + 1 : index + 2] in ("[", "O"):
                index = _skip_escape_sequence(text, index)
                continue
            keys.append(Key.ESCAPE)
        else:
            key = _KEY_CHARS.get(char)
            if key is not None:
                keys.append(key)
        index += 1
    return keys


# ---------------------------------------------------------------------------
# Terminal session
# ---------------------------------------------------------------------------

_TEARDOWN_SIGNALS: tuple[int, ...] = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGHUP") if hasattr(signal, name)
)


def _exit_on_signal(signum: int, _frame: object) -> None:
    """Turn a termination signal into SystemExit so ``finally`` blocks run."""
    raise SystemExit(128 + signum)


@contextlib.contextmanager
def _teardown_signals_blocked() -> Iterator[None]:
    """Hold SIGTERM/SIGHUP pending while the terminal changes hands."""
    if not hasattr(signal, "pthread_sigmask"):
        yield
        return
    previous = signal.pthread_sigmask(signal.SIG_BLOCK, _TEARDOWN_SIGNALS)
    try:
        yield
    finally:
        signal.pthread_sigmask(signal.SIG_SETMASK, previous)


class TerminalSession:
    """Exclusive, raw-mode ownership of the controlling terminal.

    ``acquire`` switches to raw input and the alternate screen; ``release``
    undoes both.  Release runs at most once per acquisition, and is also
    registered with ``atexit`` in case the normal teardown path is skipped.
    """

    def __init__(
        self,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
    ) -> None:
        self._stdin = stdin if stdin is not None else sys.stdin
        self._stdout = stdout if stdout is not None else sys.stdout
        self._fd: int | None = None
        self._saved_attrs: list | None = None
        self._old_handlers: dict[int, object] = {}

    @property
    def width(self) -> int:
        try:
            return os.get_terminal_size(self._stdout.fileno()).columns
        except (OSError, ValueError):
            return shutil.get_terminal_size().columns

    def acquire(self) -> None:
        """Enter raw mode and the alternate screen.

        Raises:
            TerminalUnavailable: If stdin/stdout are not a controllable
                terminal, or this platform has no termios.

        """
        if self._saved_attrs is not None:
            return
        if _IS_WINDOWS:
            msg = "raw terminal input is not supported on this platform"
            raise TerminalUnavailable(msg)

        try:
            fd = self._stdin.fileno()
            if not (os.isatty(fd) and os.isatty(self._stdout.fileno())):
                msg = "stdin and stdout must both be attached to a terminal"
                raise TerminalUnavailable(msg)
            saved = termios.tcgetattr(fd)
        except (OSError, ValueError, termios.error) as exc:
            msg = f"no controllable terminal ({exc})"
            raise TerminalUnavailable(msg) from exc

        # A termination signal arriving in here is delivered once the
        # atexit hook and the signal handlers are both in place.
        with _teardown_signals_blocked():
            self._fd = fd
            self._saved_attrs = saved
            try:
                tty.setraw(fd)
                self._write(
                    _ESC_ENTER_ALT_SCREEN + _ESC_HIDE_CURSOR + _ESC_CLEAR + _ESC_HOME
                )
            except (OSError, ValueError, termios.error) as exc:
                _release_quietly(self)
                msg = f"could not switch the terminal to raw mode ({exc})"
                raise TerminalUnavailable(msg) from exc

            atexit.register(_release_quietly, self)
            self._install_signal_handlers()
        logger.debug("Terminal acquired (fd=%d)", fd)

    def release(self) -> None:
        """Restore cooked mode, the primary screen and the cursor.

        Raises:
            RestoreFailure: If writing the reset sequences or restoring the
                saved termios attributes failed.

        """
        if self._saved_attrs is None:
            return

        errors: list[Exception] = []
        # Signals stay pending until the previous handlers are back, and the
        # saved attributes are dropped only after the restore was attempted.
        with _teardown_signals_blocked():
            self._restore_signal_handlers()
            atexit.unregister(_release_quietly)
            try:
                self._write(_ESC_SHOW_CURSOR + _ESC_LEAVE_ALT_SCREEN + _SGR_RESET)
            except (OSError, ValueError) as exc:
                errors.append(exc)
            try:
                termios.tcsetattr(self._fd, termios.TCSANOW, self._saved_attrs)
            except (OSError, termios.error) as exc:
                errors.append(exc)
            self._saved_attrs = None

        if errors:
            raise RestoreFailure("; ".join(str(e) for e in errors)) from errors[0]
        logger.debug("Terminal restored (fd=%s)", self._fd)

    def draw(self, lines: Sequence[str]) -> None:
        """Paint a frame, one row per line, clearing any leftovers."""
        buf = _ESC_HOME + "".join(
            f"\033[{row};1H{line}{_ESC_CLEAR_LINE}"
            for row, line in enumerate(lines, start=1)
        )
        buf += f"\033[{len(lines) + 1};1H{_ESC_CLEAR_BELOW}"
        self._write(buf)

    def read_keys(self, timeout: float | None) -> list[Key]:
        """Wait up to ``timeout`` seconds for input and decode it.

        Raises:
            EOFError: If the terminal input was closed.

        """
        if not self._wait_readable(timeout):
            return []
        data = os.read(self._fd, _READ_CHUNK)
        if not data:
            raise EOFError("terminal input closed")
        # A lone ESC may be the first byte of an arrow key still in flight.
        if data.endswith(b"\x1b") and self._wait_readable(_ESC_GRACE_SECONDS):
            data += os.read(self._fd, _READ_CHUNK)
        return decode_keys(data.decode("utf-8", errors="replace"))

    def _wait_readable(self, timeout: float | None) -> bool:
        readable, _, _ = select.select([self._fd], [], [], timeout)
        return bool(readable)

    def _write(self, text: str) -> None:
        self._stdout.write(text)
        self._stdout.flush()

    def _install_signal_handlers(self) -> None:
        for signum in _TEARDOWN_SIGNALS:
            try:
                self._old_handlers[signum] = signal.signal(signum, _exit_on_signal)
            except ValueError:
                # signal.signal only works from the main thread.
                logger.debug("Cannot install handler for signal %d", signum)

    def _restore_signal_handlers(self) -> None:
        for signum, handler in self._old_handlers.items():
            signal.signal(signum, signal.SIG_DFL if handler is None else handler)
        self._old_handlers.clear()


def _release_quietly(session: TerminalSession) -> None:
    """Release ``session``, logging instead of raising if restoration fails."""
    try:
        session.release()
    except RestoreFailure as exc:
        logger.error("Could not restore the terminal: %s", exc)


# ---------------------------------------------------------------------------
# Event loop
# ---------------------------------------------------------------------------


def play(
    session: TerminalSession,
    rng: random.Random,
    *,
    clock: Callable[[], float] = time.monotonic,
) -> State:
    """Run the render/read/tick loop until an exit key arrives.

    Blocks only inside ``session.read_keys``, waking for input or for the
    next tick deadline, whichever comes first.

    Returns:
        The state that was showing when the user quit.

    """
    state: State = Idle()
    next_tick = clock() + TICK_SECONDS

    while True:
        session.draw(render_frame(state, session.width))

        for key in session.read_keys(max(0.0, next_tick - clock())):
            successor = handle_key(state, key)
            if successor is None:
                logger.debug("Exit requested by %s", key.value)
                return state
            state = successor

        now = clock()
        if now >= next_tick:
            state = handle_tick(state, rng)
            next_tick = now + TICK_SECONDS


def run(session: TerminalSession, rng: random.Random) -> int:
    """Acquire ``session``, play, and always hand the terminal back.

    Raises:
        TerminalUnavailable: If the session could not be acquired.

    """
    try:
        session.acquire()
        final_state = play(session, rng)
        logger.debug("Finished in %s", final_state)
    except (KeyboardInterrupt, EOFError):
        logger.debug("Input interrupted, shutting down")
    finally:
        _release_quietly(session)
    return EXIT_SUCCESS


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def parse_args(argv: Sequence[str] | None = None) -> AppConfig:
    """Parse command-line arguments into an immutable AppConfig."""
    parser = argparse.ArgumentParser(
        prog="decision-maker",
        description="Ask a yes/no question; the Executive Decision Maker answers.",
        epilog="Enter/Space asks, Ctrl+H shows help, q or Esc quits.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for reproducible answers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_VERSION}",
    )
    args = parser.parse_args(argv)
    return AppConfig(seed=args.seed)


def _err(text: str) -> None:
    sys.stderr.write(text + "\n")


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the decision maker CLI."""
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    config = parse_args(argv)
    rng = random.Random(config.seed)  # noqa: S311

    try:
        return run(TerminalSession(), rng)
    except TerminalUnavailable as exc:
        _err(f"Error: {exc}")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())
