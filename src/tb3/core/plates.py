"""
Plate loading calculator.

Turns a requested total load into a plate loadout drawn from a finite
inventory, or reports why it cannot be built.

Modes
-----
  barbell : plates split symmetrically; (target − bar) / 2 per side.
            Inventory counts are per side.
  belt    : a single unsplit stack on a dip belt; reference weight is 0.

Decomposition
-------------
Denominations are consumed heaviest first, taking as many of each as fit.
When that greedy pass dead-ends, the search backs off one plate at a time
and retries smaller denominations.  The first solution found is therefore
the greedy answer whenever greedy succeeds, and a target is reported
unachievable only when no combination of the inventory reaches it, so
adding plates can never make a reachable target unreachable.

All arithmetic is done in integer hundredths of a pound.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from .config import DEFAULT_ROUNDING_INCREMENT, NEAREST_SEARCH_STEPS
from .models import PlateCount, PlateInventory

PlateMode = Literal["barbell", "belt"]


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlateResult:
    """
    Outcome of one plate calculation.

    ``plates`` is per side in barbell mode and the whole stack in belt mode;
    it is only populated when ``achievable`` is True.
    """

    target: float
    mode: PlateMode
    achievable: bool
    plates: tuple[PlateCount, ...] = ()
    is_bar_only: bool = False
    is_bodyweight_only: bool = False
    is_below_bar: bool = False
    nearest_achievable: float | None = None

    @property
    def display_text(self) -> str:
        if self.is_below_bar:
            return "Weight is below bar weight"
        if self.is_bar_only:
            return "Bar only"
        if self.is_bodyweight_only:
            return "Bodyweight only"
        if not self.achievable:
            return "Not achievable with current plates"
        label = "per side" if self.mode == "barbell" else "on belt"
        parts = [
            f"{_fmt(p.weight)} x{p.count}" if p.count > 1 else _fmt(p.weight)
            for p in self.plates
        ]
        return "  ".join(parts + [label])

    @property
    def total_plate_weight(self) -> float:
        """Weight of all plates on the implement (both sides in barbell mode)."""
        sides = 2 if self.mode == "barbell" else 1
        return sides * sum(p.weight * p.count for p in self.plates)


def _fmt(weight: float) -> str:
    return f"{weight:g}"


def _cents(weight: float) -> int:
    return int(round(weight * 100))


# ---------------------------------------------------------------------------
# Decomposition
# ---------------------------------------------------------------------------


def _decompose(amount: int, stock: list[tuple[int, int]]) -> list[tuple[int, int]] | None:
    """
    Split ``amount`` (cents) into plates from ``stock`` [(cents, available)].

    Stock must be ordered heaviest first.  Returns [(cents, count)] with zero
    counts omitted, or None when no combination reaches the amount exactly.
    """
    failed: set[tuple[int, int]] = set()

    def search(i: int, remaining: int) -> list[tuple[int, int]] | None:
        if remaining == 0:
            return []
        if i == len(stock) or (i, remaining) in failed:
            return None
        denom, available = stock[i]
        for n in range(min(available, remaining // denom), -1, -1):
            rest = search(i + 1, remaining - n * denom)
            if rest is not None:
                return [(denom, n)] + rest if n else rest
        failed.add((i, remaining))
        return None

    return search(0, amount)


def _stock(inventory: PlateInventory) -> list[tuple[int, int]]:
    return [(_cents(w), c) for w, c in inventory.heaviest_first() if c > 0]


def _solve(target: float, reference: float, inventory: PlateInventory, mode: PlateMode):
    """Plates for an above-reference target, or None if unreachable."""
    needed = _cents(target) - _cents(reference)
    if mode == "barbell":
        if needed % 2:
            return None
        needed //= 2
    found = _decompose(needed, _stock(inventory))
    if found is None:
        return None
    return tuple(PlateCount(weight=c / 100, count=n) for c, n in found)


def _capacity(reference: float, inventory: PlateInventory, mode: PlateMode) -> float:
    sides = 2 if mode == "barbell" else 1
    return reference + sides * inventory.total_weight


def is_achievable(target: float, reference: float, inventory: PlateInventory, mode: PlateMode) -> bool:
    """True if target equals the reference or can be built from the inventory."""
    if _cents(target) == _cents(reference):
        return True
    if target < reference:
        return False
    return _solve(target, reference, inventory, mode) is not None


def find_nearest_achievable(
    target: float,
    reference: float,
    inventory: PlateInventory,
    mode: PlateMode,
    step: float = DEFAULT_ROUNDING_INCREMENT,
) -> float | None:
    """
    Closest achievable load to ``target`` on the ``step`` grid.

    The grid is anchored on the reference weight (reference + n·step), so
    off-grid targets still meet buildable loads.  Candidates are visited
    nearest first and at equal distance the lighter load wins.  The search
    covers NEAREST_SEARCH_STEPS steps on each side and never goes below the
    reference weight or above the loaded capacity.
    """
    t, ref, s = _cents(target), _cents(reference), _cents(step)
    floor = max(ref, t - NEAREST_SEARCH_STEPS * s)
    ceiling = min(_cents(_capacity(reference, inventory, mode)), t + NEAREST_SEARCH_STEPS * s)

    offset = (t - ref) % s
    lower = t - offset if offset else t - s
    upper = t - offset + s
    while lower >= floor or upper <= ceiling:
        if upper > ceiling or (lower >= floor and t - lower <= upper - t):
            candidate, lower = lower, lower - s
        else:
            candidate, upper = upper, upper + s
        if is_achievable(candidate / 100, reference, inventory, mode):
            return candidate / 100
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def calculate_plates(
    target: float,
    reference: float,
    inventory: PlateInventory,
    mode: PlateMode,
    step: float = DEFAULT_ROUNDING_INCREMENT,
) -> PlateResult:
    """
    Build a plate loadout for ``target``.

    Args:
        target: Requested total load
        reference: Bar weight in barbell mode, 0 in belt mode
        inventory: Available plates (never modified)
        mode: "barbell" or "belt"
        step: Search increment for nearest_achievable (the rounding unit)

    Returns:
        PlateResult; shortfalls are reported with achievable=False and an
        optional nearest_achievable, never raised.
    """
    if mode == "belt" and target <= reference:
        return PlateResult(target=target, mode=mode, achievable=True, is_bodyweight_only=True)
    if _cents(target) == _cents(reference):
        return PlateResult(target=target, mode=mode, achievable=True, is_bar_only=True)
    if target < reference:
        return PlateResult(target=target, mode=mode, achievable=False, is_below_bar=True)

    plates = _solve(target, reference, inventory, mode)
    if plates is not None:
        return PlateResult(target=target, mode=mode, achievable=True, plates=plates)

    return PlateResult(
        target=target,
        mode=mode,
        achievable=False,
        nearest_achievable=find_nearest_achievable(target, reference, inventory, mode, step),
    )


def calculate_barbell_plates(
    target: float,
    bar_weight: float,
    inventory: PlateInventory,
    step: float = DEFAULT_ROUNDING_INCREMENT,
) -> PlateResult:
    return calculate_plates(target, bar_weight, inventory, "barbell", step)


def calculate_belt_plates(
    target: float,
    inventory: PlateInventory,
    step: float = DEFAULT_ROUNDING_INCREMENT,
) -> PlateResult:
    return calculate_plates(target, 0.0, inventory, "belt", step)
