#!/usr/bin/env python3
"""
  bonsai: terminal front end.

  Grows trees from bonsai.py and puts them on screen: a curses session for
  the interactive modes (live growth, infinite/screensaver loops) and a plain
  ANSI dump for --print.

  Controls:
    any key   leave the finished tree / stop an infinite loop
    ctrl-c    quit at any time (the terminal is always restored)

  Usage:
    bonsai                       # grow one tree, wait for a key
    bonsai -l -t 0.01            # watch it grow
    bonsai -S                    # screensaver: live + infinite
    bonsai -p -s 42 --no-color   # print a reproducible tree and exit
    bonsai -i --log trees.csv    # log every tree grown to CSV
"""

from __future__ import annotations

import argparse
import curses
import shutil
import signal
import sys
import textwrap
import time
from dataclasses import dataclass, field
from pathlib import Path
from types import FrameType
from typing import IO, ClassVar, NoReturn, TextIO

from bonsai import (
    BRIGHT_GREEN,
    BRIGHT_YELLOW,
    DEFAULT_LEAVES,
    GREEN,
    GREY,
    NO_COLOR,
    YELLOW,
    Canvas,
    Config,
    ConfigError,
    TreeStats,
    grow_tree,
    next_seed,
    parse_leaves,
    parse_seed,
)

FALLBACK_SIZE = (80, 24)
POLL_INTERVAL = 0.05

# ── Palette ─────────────────────────────────────────────────────────────
# color tag -> (curses color, bold). Bold black renders as grey.
CURSES_COLORS: dict[int, tuple[int, bool]] = {
    YELLOW: (curses.COLOR_YELLOW, False),
    BRIGHT_YELLOW: (curses.COLOR_YELLOW, True),
    GREEN: (curses.COLOR_GREEN, False),
    BRIGHT_GREEN: (curses.COLOR_GREEN, True),
    GREY: (curses.COLOR_BLACK, True),
}

ANSI_RESET = "\033[0m"
ANSI_CODES: dict[int, str] = {
    YELLOW: "\033[33m",
    BRIGHT_YELLOW: "\033[1;33m",
    GREEN: "\033[32m",
    BRIGHT_GREEN: "\033[1;32m",
    GREY: "\033[1;30m",
}


def terminal_size() -> tuple[int, int]:
    """(columns, rows) of the controlling terminal, or 80x24."""
    try:
        size = shutil.get_terminal_size(fallback=FALLBACK_SIZE)
    except (OSError, ValueError):
        return FALLBACK_SIZE
    if size.columns <= 0 or size.lines <= 0:
        return FALLBACK_SIZE
    return size.columns, size.lines


# ═══════════════════════════════════════════════════════════════════════
#  Growth telemetry
# ═══════════════════════════════════════════════════════════════════════

class GrowthLogger:
    """Writes one CSV row per grown tree."""

    HEADER: ClassVar[str] = (
        "tree,time_s,seed,life,multiplier,width,height,"
        "branches,shoots,steps,truncated\n"
    )

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fh: IO[str] | None = None
        self._t0: float = time.monotonic()
        self._count: int = 0

    def open(self) -> None:
        try:
            self._fh = open(self._path, "w")
            self._fh.write(self.HEADER)
            self._fh.flush()
        except OSError:
            self._fh = None

    def log(self, config: Config, stats: TreeStats) -> None:
        if self._fh is None:
            return
        self._count += 1
        t = time.monotonic() - self._t0
        self._fh.write(
            f"{self._count},{t:.1f},{stats.seed},{config.life},{config.multiplier},"
            f"{config.width},{config.height},{stats.branches},{stats.shoots},"
            f"{stats.steps},{int(stats.truncated)}\n"
        )
        try:
            self._fh.flush()
        except OSError:
            pass

    def close(self) -> None:
        if self._fh is not None:
            try:
                self._fh.close()
            except OSError:
                pass
            self._fh = None


# ═══════════════════════════════════════════════════════════════════════
#  Color management
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ColorMap:
    """Maps canvas color tags to curses attributes."""

    enabled: bool = True
    _attrs: dict[int, int] = field(default_factory=dict)

    def setup(self) -> None:
        if not self.enabled or not curses.has_colors():
            self.enabled = False
            return

        curses.start_color()
        try:
            curses.use_default_colors()
            background = -1
        except curses.error:
            background = curses.COLOR_BLACK

        max_pairs = curses.COLOR_PAIRS - 1
        pair_id = 1
        for tag, (fg, bold) in CURSES_COLORS.items():
            if pair_id > max_pairs:
                break
            curses.init_pair(pair_id, fg, background)
            attr = curses.color_pair(pair_id)
            if bold:
                attr |= curses.A_BOLD
            self._attrs[tag] = attr
            pair_id += 1

    def attr(self, color: int) -> int:
        if not self.enabled:
            return 0
        return self._attrs.get(color, 0)


# ═══════════════════════════════════════════════════════════════════════
#  Presenters
# ═══════════════════════════════════════════════════════════════════════

class ScreenPresenter:
    """Curses frame presenter. Cells off the window are skipped silently."""

    def __init__(self, stdscr: curses.window, cmap: ColorMap) -> None:
        self.stdscr = stdscr
        self.cmap = cmap

    def size(self) -> tuple[int, int]:
        rows, cols = self.stdscr.getmaxyx()
        return cols, rows

    def _put(self, y: int, x: int, text: str, attr: int = 0) -> None:
        try:
            self.stdscr.addstr(y, x, text, attr)
        except curses.error:
            pass

    def draw(self, canvas: Canvas) -> None:
        self.stdscr.erase()
        _attr = self.cmap.attr
        for x, y, char, color in canvas.cells():
            self._put(y, x, char, _attr(color))

    def draw_cell(self, canvas: Canvas, x: int, y: int) -> None:
        if not canvas.in_bounds(x, y):
            return
        char, color = canvas[x, y]
        self._put(y, x, char, self.cmap.attr(color))

    def message(self, text: str) -> None:
        """Framed message box in the lower right of the screen."""
        if not text:
            return
        cols, rows = self.size()
        box_w = max(12, cols // 4)
        lines = textwrap.wrap(text, box_w - 4) or [""]
        x0 = int(cols * 0.7)
        y0 = int(rows * 0.7)
        if x0 + box_w > cols:
            x0 = max(0, cols - box_w)
        if y0 + len(lines) + 2 > rows:
            y0 = max(0, rows - len(lines) - 2)

        inner = box_w - 2
        self._put(y0, x0, "+" + "-" * inner + "+")
        for i, line in enumerate(lines):
            self._put(y0 + 1 + i, x0, "| " + line.ljust(inner - 2) + " |")
        self._put(y0 + 1 + len(lines), x0, "+" + "-" * inner + "+")

    def overlay(self, config: Config, stats: TreeStats) -> None:
        """Growth stats panel in the top-left corner."""
        lines = [
            f" seed        : {stats.seed}",
            f" life        : {config.life}",
            f" multiplier  : {config.multiplier}",
            f" branches    : {stats.branches:,}",
            f" shoots      : {stats.shoots:,}",
            f" steps       : {stats.steps:,}",
            f" truncated   : {'yes' if stats.truncated else 'no'}",
        ]
        for i, line in enumerate(lines):
            self._put(i, 0, line, curses.A_DIM)

    def refresh(self) -> None:
        self.stdscr.refresh()

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`. False if a key was pressed meanwhile."""
        deadline = time.monotonic() + seconds
        self.stdscr.nodelay(True)
        try:
            while True:
                try:
                    key = self.stdscr.getch()
                except curses.error:
                    key = -1
                if key != -1:
                    return False
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return True
                time.sleep(min(POLL_INTERVAL, remaining))
        finally:
            self.stdscr.nodelay(False)

    def pause(self) -> None:
        """Block until a key is pressed."""
        self.stdscr.nodelay(False)
        try:
            self.stdscr.getch()
        except curses.error:
            pass


class LiveSink:
    """On-step sink for live mode: draw the new cell, then sleep."""

    def __init__(self, presenter: ScreenPresenter, time_step: float) -> None:
        self.presenter = presenter
        self.time_step = time_step
        self._primed = False

    def __call__(self, canvas: Canvas, x: int, y: int) -> None:
        # First step also brings the pot on screen
        if not self._primed:
            self.presenter.draw(canvas)
            self._primed = True
        else:
            self.presenter.draw_cell(canvas, x, y)
        self.presenter.refresh()
        if self.time_step > 0:
            time.sleep(self.time_step)


def format_canvas(canvas: Canvas, use_colors: bool = True) -> str:
    """Render the canvas as text, with ANSI color runs when asked."""
    lines: list[str] = []
    for y, row in enumerate(canvas.chars.tolist()):
        width = len("".join(row).rstrip())
        if not use_colors:
            lines.append("".join(row[:width]))
            continue

        colors = canvas.colors[y].tolist()
        buf: list[str] = []
        current = NO_COLOR
        for x in range(width):
            color = colors[x] if row[x] != " " else current
            if color != current:
                buf.append(ANSI_CODES.get(color, ANSI_RESET) if color else ANSI_RESET)
                current = color
            buf.append(row[x])
        if current != NO_COLOR:
            buf.append(ANSI_RESET)
        lines.append("".join(buf))

    # Drop blank sky above the tree
    while lines and not lines[0]:
        lines.pop(0)
    return "\n".join(lines)


def print_canvas(
    canvas: Canvas,
    use_colors: bool = True,
    message: str = "",
    stream: TextIO | None = None,
) -> None:
    out = stream if stream is not None else sys.stdout
    out.write(format_canvas(canvas, use_colors) + "\n")
    if message:
        out.write(f"\n{message}\n")
    out.flush()


# ═══════════════════════════════════════════════════════════════════════
#  Command line
# ═══════════════════════════════════════════════════════════════════════

class _Parser(argparse.ArgumentParser):
    """argparse with exit status 1 for bad arguments."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="bonsai",
        description="A beautifully random bonsai tree generator",
    )
    parser.add_argument("-l", "--live", action="store_true",
                        help="live mode: show each step of growth")
    parser.add_argument("-t", "--time", type=float, default=0.03, dest="time_step",
                        help="in live mode, wait TIME secs between steps (default: 0.03)")
    parser.add_argument("-i", "--infinite", action="store_true",
                        help="infinite mode: keep growing trees")
    parser.add_argument("-w", "--wait", type=float, default=4.0, dest="time_wait",
                        help="in infinite mode, wait TIME between each tree (default: 4.0)")
    parser.add_argument("-S", "--screensaver", action="store_true",
                        help="screensaver mode: live + infinite, quit on any key")
    parser.add_argument("-m", "--message", type=str, default="",
                        help="attach message next to the tree")
    parser.add_argument("-b", "--base", type=int, default=1,
                        help="ASCII-art plant base to use, 0 is none (default: 1)")
    parser.add_argument("-c", "--leaf", type=str, default=",".join(DEFAULT_LEAVES),
                        help="list of comma-delimited strings for leaves")
    parser.add_argument("-M", "--multiplier", type=int, default=5,
                        help="branch multiplier: higher -> more branching, 0-20 (default: 5)")
    parser.add_argument("-L", "--life", type=int, default=32,
                        help="life: higher -> more growth, 0-200 (default: 32)")
    parser.add_argument("-p", "--print", action="store_true", dest="print_tree",
                        help="print tree to terminal when finished")
    parser.add_argument("-s", "--seed", type=str, default=None,
                        help="seed random number generator (default: time-based)")
    parser.add_argument("-C", "--color", action=argparse.BooleanOptionalAction,
                        default=True, help="use colors (default: on)")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="show growth stats next to the tree")
    parser.add_argument("--log", type=str, default=None,
                        help="write a CSV row per grown tree to this path")
    return parser


def config_from_args(args: argparse.Namespace) -> Config:
    """Build a validated Config; raises ConfigError."""
    seed = parse_seed(args.seed) if args.seed is not None else time.time_ns()
    width, height = terminal_size()
    return Config(
        life=args.life,
        multiplier=args.multiplier,
        base=args.base,
        seed=seed,
        time_step=args.time_step,
        time_wait=args.time_wait,
        message=args.message,
        leaves=parse_leaves(args.leaf),
        width=width,
        height=height,
        use_colors=args.color,
    )


# ═══════════════════════════════════════════════════════════════════════
#  Main loop
# ═══════════════════════════════════════════════════════════════════════

def _terminate(signum: int, frame: FrameType | None) -> None:
    # Unwinds through curses.wrapper, which restores the terminal
    raise SystemExit(0)


def session(
    stdscr: curses.window,
    config: Config,
    args: argparse.Namespace,
    logger: GrowthLogger | None = None,
) -> Canvas | None:
    """Interactive curses session. Returns the last canvas in print mode."""
    try:
        curses.curs_set(0)
    except curses.error:
        pass

    cmap = ColorMap(enabled=config.use_colors)
    cmap.setup()
    presenter = ScreenPresenter(stdscr, cmap)

    seed = config.seed
    while True:
        cols, rows = presenter.size()
        tree_config = config.replace(width=cols, height=rows, seed=seed)
        sink = LiveSink(presenter, tree_config.time_step) if args.live else None

        canvas, stats = grow_tree(tree_config, on_step=sink)

        presenter.draw(canvas)
        presenter.message(tree_config.message)
        if args.verbose:
            presenter.overlay(tree_config, stats)
        presenter.refresh()

        if logger is not None:
            logger.log(tree_config, stats)

        if args.print_tree:
            return canvas
        if not args.infinite:
            presenter.pause()
            return None
        if not presenter.wait(tree_config.time_wait):
            return None
        seed = next_seed(seed)


def run(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.screensaver:
        args.live = True
        args.infinite = True
    if args.print_tree:
        args.infinite = False

    try:
        config = config_from_args(args)
    except ConfigError as exc:
        print(f"bonsai: error: {exc}", file=sys.stderr)
        return 1

    logger: GrowthLogger | None = None
    if args.log:
        logger = GrowthLogger(Path(args.log))
        logger.open()

    try:
        if args.print_tree and not args.live:
            canvas, stats = grow_tree(config)
            if logger is not None:
                logger.log(config, stats)
            print_canvas(canvas, config.use_colors, config.message)
            if args.verbose:
                print(
                    f"seed {stats.seed}  branches {stats.branches}  "
                    f"shoots {stats.shoots}  steps {stats.steps}"
                    + ("  (truncated)" if stats.truncated else "")
                )
            return 0

        signal.signal(signal.SIGTERM, _terminate)
        final = curses.wrapper(session, config, args, logger)
        if final is not None:
            print_canvas(final, config.use_colors, config.message)
    except KeyboardInterrupt:
        pass
    finally:
        if logger is not None:
            logger.close()
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
