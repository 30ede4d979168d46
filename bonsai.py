#!/usr/bin/env python3
"""
  bonsai: a procedurally grown ASCII bonsai tree.

  A trunk starts just above its pot and random-walks upward, spending one
  unit of life per step. Along the way it forks into new trunks, throws out
  shoots to alternating sides, and every branch that runs low on life turns
  into a cluster of leaves. Every decision comes from one seeded random
  stream, so the same seed always grows the same tree.

  This module is the terminal-free core: configuration, the character
  canvas, the random source, the branch grower and the pot templates.
  Presentation lives in bonsai_term.py.
"""

from __future__ import annotations

import dataclasses
import random
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

import numpy as np
from numpy.typing import NDArray

# ── Limits ──────────────────────────────────────────────────────────────
MAX_LIFE = 200
MAX_MULTIPLIER = 20
BASE_TYPES = (0, 1, 2)
SEED_MIN = -(2 ** 63)
SEED_MAX = 2 ** 63 - 1
SEED_MASK = 2 ** 64 - 1

# Growth ceilings: the trunk-fork rule can chain forks, so total work is
# capped rather than trusted to stay small.
DEFAULT_MAX_STEPS = 250_000
MAX_DEPTH = 600

# Bottom rows a downward step may not enter
GROUND_MARGIN = 3

DEFAULT_LEAVES: tuple[str, ...] = ("&", "*", "o", "@", "%")
FALLBACK_LEAF = "&"
BLANK = " "

# ── Palette ─────────────────────────────────────────────────────────────
# Color tags stored per cell; presenters map them to curses pairs / ANSI.
NO_COLOR = 0
YELLOW = 1
BRIGHT_YELLOW = 2
GREEN = 3
BRIGHT_GREEN = 4
GREY = 5


# ═══════════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════════

class ConfigError(ValueError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _is_int(x: Any) -> bool:
    return isinstance(x, int) and not isinstance(x, bool)


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def parse_seed(text: str) -> int:
    """Parse a decimal 64-bit signed seed."""
    try:
        seed = int(text.strip(), 10)
    except ValueError:
        raise ConfigError(f"invalid seed: {text!r}") from None
    _require(SEED_MIN <= seed <= SEED_MAX, f"seed out of 64-bit range: {text}")
    return seed


def parse_leaves(text: str) -> tuple[str, ...]:
    """Split a comma-delimited leaf list, dropping empty entries."""
    return tuple(part for part in text.split(",") if part)


@dataclass(frozen=True)
class Config:
    """Everything one tree needs. Validated on construction."""

    life: int = 32
    multiplier: int = 5
    base: int = 1
    seed: int = 0
    time_step: float = 0.03
    time_wait: float = 4.0
    message: str = ""
    leaves: tuple[str, ...] = DEFAULT_LEAVES
    width: int = 80
    height: int = 24
    use_colors: bool = True
    max_steps: int = DEFAULT_MAX_STEPS

    def __post_init__(self) -> None:
        validate_config(self)

    def replace(self, **changes: Any) -> Config:
        return dataclasses.replace(self, **changes)


def validate_config(config: Config) -> None:
    _require(
        _is_int(config.life) and 0 <= config.life <= MAX_LIFE,
        f"life must be between 0 and {MAX_LIFE}",
    )
    _require(
        _is_int(config.multiplier) and 0 <= config.multiplier <= MAX_MULTIPLIER,
        f"multiplier must be between 0 and {MAX_MULTIPLIER}",
    )
    _require(
        _is_int(config.base) and config.base in BASE_TYPES,
        "base type must be 0, 1, or 2",
    )
    _require(
        _is_int(config.seed) and SEED_MIN <= config.seed <= SEED_MAX,
        "seed must be a 64-bit integer",
    )
    _require(
        _is_number(config.time_step) and config.time_step >= 0,
        "time step must be non-negative",
    )
    _require(
        _is_number(config.time_wait) and config.time_wait >= 0,
        "wait time must be non-negative",
    )
    _require(isinstance(config.message, str), "message must be a string")
    _require(
        isinstance(config.leaves, tuple)
        and all(isinstance(leaf, str) for leaf in config.leaves),
        "leaves must be a tuple of strings",
    )
    _require(
        _is_int(config.width) and _is_int(config.height)
        and config.width >= 0 and config.height >= 0,
        "width and height must be non-negative integers",
    )
    _require(_is_int(config.max_steps) and config.max_steps > 0,
             "max_steps must be a positive integer")


# ═══════════════════════════════════════════════════════════════════════
#  Canvas
# ═══════════════════════════════════════════════════════════════════════

class Canvas:
    """Fixed-size character grid with a color tag per cell.

    Writes outside the grid are dropped silently; trees are allowed to grow
    past the edges of a small terminal.
    """

    def __init__(self, width: int, height: int) -> None:
        self.width: int = max(0, width)
        self.height: int = max(0, height)
        self.chars: NDArray[np.str_] = np.full(
            (self.height, self.width), BLANK, dtype="<U1"
        )
        self.colors: NDArray[np.int8] = np.zeros(
            (self.height, self.width), dtype=np.int8
        )

    @property
    def shape(self) -> tuple[int, int]:
        return self.height, self.width

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def set_pixel(self, x: int, y: int, char: str, color: int = NO_COLOR) -> None:
        if 0 <= y < self.height and 0 <= x < self.width:
            self.chars[y, x] = char
            self.colors[y, x] = color

    def clear(self) -> None:
        self.chars[:] = BLANK
        self.colors[:] = NO_COLOR

    def __getitem__(self, key: tuple[int, int]) -> tuple[str, int]:
        x, y = key
        return str(self.chars[y, x]), int(self.colors[y, x])

    def rows(self) -> Iterator[str]:
        for row in self.chars.tolist():
            yield "".join(row)

    def cells(self) -> Iterator[tuple[int, int, str, int]]:
        """Yield (x, y, char, color) for every non-blank cell, row-major."""
        ys, xs = np.nonzero(self.chars != BLANK)
        chars = self.chars[ys, xs].tolist()
        colors = self.colors[ys, xs].tolist()
        yield from zip(xs.tolist(), ys.tolist(), chars, colors)

    def text(self) -> str:
        return "\n".join(self.rows())


# ═══════════════════════════════════════════════════════════════════════
#  Random source
# ═══════════════════════════════════════════════════════════════════════

class Dice:
    """The one random stream a tree draws from.

    Seeds are masked to 64 bits so negative seeds don't alias their
    absolute value.
    """

    def __init__(self, seed: int) -> None:
        self.seed: int = seed
        self._rng = random.Random(seed & SEED_MASK)

    def intn(self, n: int) -> int:
        """Uniform integer in [0, n)."""
        return self._rng.randrange(n)

    def roll(self, faces: Sequence[int]) -> int:
        """Roll a die whose faces carry the given values."""
        return faces[self._rng.randrange(len(faces))]


# ═══════════════════════════════════════════════════════════════════════
#  Branch kinds, movement, glyphs and colors
# ═══════════════════════════════════════════════════════════════════════

class BranchKind(IntEnum):
    TRUNK = 0
    SHOOT_LEFT = 1
    SHOOT_RIGHT = 2
    DYING = 3
    DEAD = 4


GROWING_KINDS = (BranchKind.TRUNK, BranchKind.SHOOT_LEFT, BranchKind.SHOOT_RIGHT)
SHOOT_KINDS = (BranchKind.SHOOT_LEFT, BranchKind.SHOOT_RIGHT)

# ── Dice faces ──────────────────────────────────────────────────────────
TRUNK_WOBBLE_DX: tuple[int, ...] = (-1, 0, 1)
TRUNK_GROWTH_DX: tuple[int, ...] = (-2, -1, -1, -1, 0, 0, 1, 1, 1, 2)
SHOOT_DY: tuple[int, ...] = (-1, 0, 0, 0, 0, 0, 0, 1, 1, 1)
SHOOT_LEFT_DX: tuple[int, ...] = (-2, -2, -1, -1, -1, -1, 0, 0, 0, 1)
SHOOT_RIGHT_DX: tuple[int, ...] = (2, 2, 1, 1, 1, 1, 0, 0, 0, -1)
DYING_DY: tuple[int, ...] = (-1, -1, 0, 0, 0, 0, 0, 0, 0, 1)
DYING_DX: tuple[int, ...] = (-3, -2, -2, -1, -1, -1, 0, 0, 0, 1, 1, 1, 2, 2, 3)
DEAD_DY: tuple[int, ...] = (-1, -1, -1, 0, 0, 0, 0, 1, 1, 1)
DEAD_DX: tuple[int, ...] = (-1, 0, 1)


def deltas(
    kind: BranchKind, life: int, age: int, multiplier: int, dice: Dice
) -> tuple[int, int]:
    """Draw the (dx, dy) step for a branch of the given kind and age."""
    if kind == BranchKind.TRUNK:
        if age <= 2 or life < 4:
            return dice.roll(TRUNK_WOBBLE_DX), 0
        if age < multiplier * 3:
            # int(m/2 + 0.5) is at least 1 here since multiplier > 0
            cadence = int(multiplier * 0.5 + 0.5)
            dy = -1 if age % cadence == 0 else 0
            return dice.roll(TRUNK_GROWTH_DX), dy
        dy = -1 if dice.intn(10) > 2 else 0
        return dice.roll(TRUNK_WOBBLE_DX), dy

    if kind == BranchKind.SHOOT_LEFT:
        dy = dice.roll(SHOOT_DY)
        return dice.roll(SHOOT_LEFT_DX), dy

    if kind == BranchKind.SHOOT_RIGHT:
        dy = dice.roll(SHOOT_DY)
        return dice.roll(SHOOT_RIGHT_DX), dy

    if kind == BranchKind.DYING:
        dy = dice.roll(DYING_DY)
        return dice.roll(DYING_DX), dy

    dy = dice.roll(DEAD_DY)
    return dice.roll(DEAD_DX), dy


def _rising(dx: int) -> str:
    if dx < 0:
        return "\\"
    if dx == 0:
        return "|"
    return "/"


def _effective_kind(kind: BranchKind, life: int) -> BranchKind:
    return BranchKind.DYING if life < 4 else kind


def choose_glyph(
    kind: BranchKind,
    life: int,
    dx: int,
    dy: int,
    leaves: Sequence[str],
    dice: Dice,
) -> str:
    """Pick the character stamped after a step."""
    kind = _effective_kind(kind, life)

    if kind == BranchKind.TRUNK:
        return "~" if dy == 0 else _rising(dx)

    if kind == BranchKind.SHOOT_LEFT:
        if dy > 0:
            return "\\"
        return "_" if dy == 0 else _rising(dx)

    if kind == BranchKind.SHOOT_RIGHT:
        if dy > 0:
            return "/"
        return "_" if dy == 0 else _rising(dx)

    if not leaves:
        return FALLBACK_LEAF
    return leaves[dice.intn(len(leaves))][:1] or FALLBACK_LEAF


def choose_color(kind: BranchKind, life: int, dice: Dice) -> int:
    """Pick the color tag for a stamped glyph.

    Rolled whether or not colors are shown, so a seed grows the same shape
    in both modes.
    """
    kind = _effective_kind(kind, life)
    if kind in GROWING_KINDS:
        return BRIGHT_YELLOW if dice.intn(2) == 0 else YELLOW
    roll = dice.intn(10)
    if roll == 0:
        return BRIGHT_YELLOW
    if roll == 1:
        return GREEN
    return BRIGHT_GREEN


# ═══════════════════════════════════════════════════════════════════════
#  Pots
# ═══════════════════════════════════════════════════════════════════════

# Bottom row first; each later row is stamped one line higher.
BASES: dict[int, tuple[str, ...]] = {
    1: (
        ":___________./~~~\\.___________:",
        " \\                           / ",
        "  \\_________________________/ ",
        "  (_)                     (_)",
    ),
    2: (
        "(---./~~~\\.---)",
        " (           ) ",
        "  (_________)  ",
    ),
}

# Rows above the bottom line where the trunk starts when a pot is drawn
TRUNK_LIFT = 4

TRUNK_MOUTH = "./~~~\\."
GRASS_CHARS = "_-"
# Large pot only, colored variant
GRASS_CYCLE = "_,_._'"


def base_height(base: int) -> int:
    return len(BASES.get(base, ()))


def draw_base(canvas: Canvas, base: int, use_colors: bool = False) -> None:
    """Stamp a pot template centered on the bottom rows of the canvas.

    The template's first row lands on the bottom line; the rows after it
    climb upward from there.
    """
    rows = BASES.get(base)
    if rows is None:
        return

    center_x = canvas.width // 2
    base_y = canvas.height - 1
    grass_idx = 0

    for row_idx, row in enumerate(rows):
        start_x = center_x - len(row) // 2
        y = base_y - row_idx
        mouth_lo = row.find(TRUNK_MOUTH)
        mouth_hi = mouth_lo + len(TRUNK_MOUTH) if mouth_lo >= 0 else -1

        for i, char in enumerate(row):
            if char == BLANK:
                continue
            if not use_colors:
                canvas.set_pixel(start_x + i, y, char)
                continue

            if mouth_lo <= i < mouth_hi:
                color = BRIGHT_YELLOW
            elif row_idx == 0 and char in GRASS_CHARS:
                color = GREEN
                if base == 1:
                    char = GRASS_CYCLE[grass_idx % len(GRASS_CYCLE)]
                    grass_idx += 1
            else:
                color = GREY
            canvas.set_pixel(start_x + i, y, char, color)


def trunk_origin(config: Config) -> tuple[int, int]:
    """Where the trunk starts: above the pot, or on the bottom row without one."""
    start_y = config.height - 1
    if config.base > 0:
        start_y -= TRUNK_LIFT
    return config.width // 2, start_y


# ═══════════════════════════════════════════════════════════════════════
#  The grower
# ═══════════════════════════════════════════════════════════════════════

StepSink = Callable[[Canvas, int, int], None]


@dataclass
class TreeStats:
    """Summary of one finished growth."""
    seed: int
    branches: int = 0
    shoots: int = 0
    steps: int = 0
    truncated: bool = False


class Grower:
    """
    Growth context for a single tree.

    Owns the random stream, the canvas it draws on and the run counters.
    Branches recurse depth-first: a child is fully grown, including its own
    children, before its parent takes another step. That ordering is what
    makes a seed reproducible.
    """

    def __init__(
        self,
        config: Config,
        canvas: Canvas | None = None,
        on_step: StepSink | None = None,
    ) -> None:
        self.config = config
        if canvas is None or canvas.shape != (config.height, config.width):
            canvas = Canvas(config.width, config.height)
        self.canvas: Canvas = canvas
        self.on_step = on_step
        self.dice = Dice(config.seed)

        self.branches: int = 0
        self.shoots: int = 0
        self.steps: int = 0
        self.truncated: bool = False

    def plant(self) -> None:
        self.canvas.clear()
        draw_base(self.canvas, self.config.base, self.config.use_colors)

    def grow(self) -> TreeStats:
        self.plant()
        x, y = trunk_origin(self.config)
        self.branch(x, y, BranchKind.TRUNK, self.config.life)
        return self.stats()

    def stats(self) -> TreeStats:
        return TreeStats(
            seed=self.config.seed,
            branches=self.branches,
            shoots=self.shoots,
            steps=self.steps,
            truncated=self.truncated,
        )

    def branch(
        self, x: int, y: int, kind: BranchKind, life: int, depth: int = 0
    ) -> None:
        if depth >= MAX_DEPTH:
            self.truncated = True
            return

        cfg = self.config
        dice = self.dice
        multiplier = cfg.multiplier
        initial_life = life
        shoot_cooldown = multiplier
        self.branches += 1

        while life > 0:
            if self.truncated or self.steps >= cfg.max_steps:
                self.truncated = True
                return

            life -= 1
            age = initial_life - life

            dx, dy = deltas(kind, life, age, multiplier, dice)

            if dy > 0 and y > cfg.height - GROUND_MARGIN:
                dy -= 1

            if age == 1 and dy >= 0:
                dy = -1

            if life < 3:
                self.branch(x, y, BranchKind.DEAD, life, depth + 1)
            elif kind in GROWING_KINDS and life < multiplier + 2:
                self.branch(x, y, BranchKind.DYING, life, depth + 1)
            elif kind == BranchKind.TRUNK and (
                dice.intn(3) == 0 or (multiplier > 0 and life % multiplier == 0)
            ):
                if dice.intn(8) == 0 and life > 7:
                    shoot_cooldown = multiplier * 2
                    self.branch(
                        x, y, BranchKind.TRUNK, life + dice.intn(5) - 2, depth + 1
                    )
                elif shoot_cooldown <= 0:
                    shoot_cooldown = multiplier * 2
                    self.shoots += 1
                    side = (
                        BranchKind.SHOOT_LEFT
                        if self.shoots % 2 == 0
                        else BranchKind.SHOOT_RIGHT
                    )
                    self.branch(x, y, side, life + multiplier, depth + 1)
            shoot_cooldown -= 1

            if self.truncated or self.steps >= cfg.max_steps:
                self.truncated = True
                return

            x += dx
            y += dy

            glyph = choose_glyph(kind, life, dx, dy, cfg.leaves, dice)
            color = choose_color(kind, life, dice)
            self.canvas.set_pixel(x, y, glyph, color)
            self.steps += 1

            if self.on_step is not None:
                self.on_step(self.canvas, x, y)


def grow_tree(
    config: Config,
    canvas: Canvas | None = None,
    on_step: StepSink | None = None,
) -> tuple[Canvas, TreeStats]:
    """Plant the pot and grow a whole tree. Returns the canvas and stats."""
    grower = Grower(config, canvas, on_step)
    stats = grower.grow()
    return grower.canvas, stats


def next_seed(seed: int) -> int:
    """The seed after this one, wrapping within the signed 64-bit range."""
    return ((seed + 1 - SEED_MIN) & SEED_MASK) + SEED_MIN
