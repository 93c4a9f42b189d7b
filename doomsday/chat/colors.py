"""Deterministic nickname colours, identical to the ones the web chat shows."""

from __future__ import annotations

# Readable on a dark background
NICKNAME_COLORS: tuple[str, ...] = (
    "#ff6b6b",
    "#4ecdc4",
    "#45b7d1",
    "#f9ca24",
    "#6c5ce7",
    "#a55eea",
    "#26de81",
    "#fd79a8",
    "#fdcb6e",
    "#74b9ff",
    "#e17055",
    "#00b894",
    "#0984e3",
    "#e84393",
    "#00cec9",
    "#ffeaa7",
    "#fab1a0",
    "#81ecec",
    "#55a3ff",
    "#fd79a8",
)


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x1_0000_0000 if value & 0x8000_0000 else value


def nickname_hash(nickname: str) -> int:
    """
    ``hash = code + ((hash << 5) - hash)`` over UTF-16 code units.

    The shift truncates to a signed 32-bit integer while the subtraction and
    addition do not, matching browser arithmetic so every client agrees.
    """
    units = nickname.encode("utf-16-le")
    value = 0
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        value = code + (_to_int32(_to_int32(value) << 5) - value)
    return value


def nickname_color(nickname: str) -> str:
    return NICKNAME_COLORS[abs(nickname_hash(nickname)) % len(NICKNAME_COLORS)]
