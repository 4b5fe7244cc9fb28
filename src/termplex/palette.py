"""Default colour palette handed to clients and plugins."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union


class ThemeHue(str, Enum):
    DARK = "dark"
    LIGHT = "light"


class PaletteSource(str, Enum):
    DEFAULT = "default"
    XRESOURCES = "xresources"


@dataclass(frozen=True)
class EightBit:
    index: int


@dataclass(frozen=True)
class Rgb:
    red: int
    green: int
    blue: int


PaletteColor = Union[EightBit, Rgb]

WHITE = EightBit(255)
GREEN = EightBit(154)
GRAY = EightBit(238)
BRIGHT_GRAY = EightBit(245)
RED = EightBit(124)
ORANGE = EightBit(166)
BLACK = EightBit(16)


@dataclass(frozen=True)
class Palette:
    source: PaletteSource
    theme_hue: ThemeHue
    fg: PaletteColor
    bg: PaletteColor
    black: PaletteColor
    red: PaletteColor
    green: PaletteColor
    yellow: PaletteColor
    blue: PaletteColor
    magenta: PaletteColor
    cyan: PaletteColor
    white: PaletteColor
    orange: PaletteColor
    gray: PaletteColor
    purple: PaletteColor
    gold: PaletteColor
    silver: PaletteColor
    pink: PaletteColor
    brown: PaletteColor


def default_palette() -> Palette:
    return Palette(
        source=PaletteSource.DEFAULT,
        theme_hue=ThemeHue.DARK,
        fg=BRIGHT_GRAY,
        bg=GRAY,
        black=BLACK,
        red=RED,
        green=GREEN,
        yellow=GRAY,
        blue=GRAY,
        magenta=GRAY,
        cyan=GRAY,
        white=WHITE,
        orange=ORANGE,
        gray=GRAY,
        purple=GRAY,
        gold=GRAY,
        silver=GRAY,
        pink=GRAY,
        brown=GRAY,
    )
