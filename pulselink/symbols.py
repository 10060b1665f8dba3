"""
Display symbol catalogs: trend arrows and superscript annotations.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class TrendSymbolSet:
    """Pair of symbols shown for a rising or falling heart rate."""
    upward: str = "⤴️"
    downward: str = "⤵️"

    @property
    def combined(self) -> str:
        """Display/selection key, e.g. '↑ - ↓'."""
        return f"{self.upward} - {self.downward}"


TREND_SYMBOL_SETS: List[TrendSymbolSet] = [
    TrendSymbolSet("⤴️", "⤵️"),
    TrendSymbolSet("⬆", "⬇"),
    TrendSymbolSet("↑", "↓"),
    TrendSymbolSet("↗", "↘"),
    TrendSymbolSet("🔺", "🔻"),
]


def select_trend_symbol_set(
    combined: Optional[str],
    catalog: Sequence[TrendSymbolSet] = TREND_SYMBOL_SETS
) -> TrendSymbolSet:
    """
    Resolve a persisted selection against the catalog.

    Falls back to the first catalog entry when the selection is empty or
    no longer present.
    """
    for symbol_set in catalog:
        if symbol_set.combined == combined:
            return symbol_set
    return catalog[0]


_SUPERSCRIPT = str.maketrans(
    "abcdefghijklmnoprstuvwxyzABDEGHIJKLMNOPRTUVW0123456789+-=()",
    "ᵃᵇᶜᵈᵉᶠᵍʰⁱʲᵏˡᵐⁿᵒᵖʳˢᵗᵘᵛʷˣʸᶻᴬᴮᴰᴱᴳᴴᴵᴶᴷᴸᴹᴺᴼᴾᴿᵀᵁⱽᵂ⁰¹²³⁴⁵⁶⁷⁸⁹⁺⁻⁼⁽⁾"
)


def to_superscript(text: str) -> str:
    """Map characters to Unicode superscript; unmapped characters pass through."""
    return (text or "").translate(_SUPERSCRIPT)
