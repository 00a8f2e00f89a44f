"""Press and gap classification helpers for the tap node."""

from __future__ import annotations

from typing import Optional

DOT = "dot"
DASH = "dash"
LONG = "long"

SYMBOL_GAP = "symbol"
LETTER_GAP = "letter"
WORD_GAP = "word"


def press_to_symbol(
    press_ms: Optional[int],
    dot_ms: int = 250,
    dash_ms: int = 750,
) -> Optional[str]:
    """Classify a press duration as dot, dash, or an over-long hold.

    Args:
        press_ms: Press duration in milliseconds, or ``None`` when the source
            only reports instantaneous taps.
        dot_ms: Presses strictly shorter than this are dots.
        dash_ms: Presses up to and including this are dashes; longer presses
            are reported as ``"long"``.

    Returns:
        The symbol name, or ``None`` if there is no press duration.
    """
    if press_ms is None or press_ms < 0:
        return None
    if dot_ms > dash_ms:
        raise ValueError("dot_ms must be <= dash_ms")
    if press_ms < dot_ms:
        return DOT
    if press_ms <= dash_ms:
        return DASH
    return LONG


def classify_gap(gap_ms: int, pause_ms: int = 500, window_ms: int = 3000) -> str:
    """Bucket an inter-tap gap.

    Gaps below ``pause_ms`` separate symbols of one letter, gaps below
    ``window_ms`` separate letters, anything longer ends a word (and, on the
    engine side, the consecutive run).
    """
    if pause_ms <= 0 or window_ms <= 0:
        raise ValueError("pause_ms and window_ms must be greater than zero")
    if gap_ms < pause_ms:
        return SYMBOL_GAP
    if gap_ms < window_ms:
        return LETTER_GAP
    return WORD_GAP


def sensitivity_label(dot_ms: int) -> str:
    """Human-readable speed bucket for a dot threshold."""
    if dot_ms <= 150:
        return "Very Fast"
    if dot_ms <= 250:
        return "Fast"
    if dot_ms <= 350:
        return "Normal"
    if dot_ms <= 450:
        return "Slow"
    return "Very Slow"


__all__ = [
    "DASH",
    "DOT",
    "LETTER_GAP",
    "LONG",
    "SYMBOL_GAP",
    "WORD_GAP",
    "classify_gap",
    "press_to_symbol",
    "sensitivity_label",
]
