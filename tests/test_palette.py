from __future__ import annotations

import dataclasses

import pytest

from termplex.palette import BRIGHT_GRAY, GRAY, EightBit, PaletteSource, ThemeHue, default_palette


def test_default_palette_is_dark_and_eight_bit() -> None:
    palette = default_palette()

    assert palette.source == PaletteSource.DEFAULT
    assert palette.theme_hue == ThemeHue.DARK
    assert palette.fg == BRIGHT_GRAY
    assert palette.bg == GRAY
    assert palette.white == EightBit(255)
    assert all(isinstance(getattr(palette, field.name), EightBit) for field in dataclasses.fields(palette)[2:])


def test_palette_is_immutable() -> None:
    palette = default_palette()

    with pytest.raises(dataclasses.FrozenInstanceError):
        palette.fg = GRAY  # type: ignore[misc]
