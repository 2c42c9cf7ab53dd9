"""Dice expression parser — supports NdM, NdM+X, NdM-X."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass, field


@dataclass
class ParsedDice:
    """Result of parsing a dice expression."""

    original: str
    dice_count: int
    dice_sides: int
    modifier: int = 0


@dataclass
class DiceExpressionResult:
    """Full result of evaluating a dice expression."""

    expression: str
    individual_rolls: list[int] = field(default_factory=list)
    subtotal: int = 0
    modifier: int = 0
    total: int = 0


_DICE_PATTERN = re.compile(
    r"^(\d*)d(\d+)"  # NdM
    r"(?:\s*([+-])\s*(\d+))?$",  # optional +X or -X
    re.IGNORECASE,
)


def parse_expression(expr: str) -> ParsedDice:
    """Parse a dice expression string into a ParsedDice.

    Supported formats:
        NdM        - e.g. 2d10
        NdM+X      - e.g. 2d10+3
        NdM-X      - e.g. 2d10-1
        dM         - e.g. d20 (shorthand for 1dM)

    Raises:
        ValueError: If the expression cannot be parsed.
    """
    expr = expr.strip()
    if not expr:
        raise ValueError("Empty dice expression")

    dice_match = _DICE_PATTERN.match(expr)
    if dice_match is None:
        raise ValueError(f"Invalid dice expression: {expr}")

    count_str = dice_match.group(1)
    sides = int(dice_match.group(2))
    sign = dice_match.group(3)
    mod_val = dice_match.group(4)

    dice_count = int(count_str) if count_str else 1
    modifier = 0
    if sign and mod_val:
        modifier = int(mod_val) if sign == "+" else -int(mod_val)

    if sides < 1:
        raise ValueError(f"Dice must have at least one side: {expr}")

    return ParsedDice(
        original=expr,
        dice_count=dice_count,
        dice_sides=sides,
        modifier=modifier,
    )


def evaluate(parsed: ParsedDice, rng: random.Random | None = None) -> DiceExpressionResult:
    """Roll dice according to a ParsedDice and return the full result."""
    roller = rng or random
    individual_rolls = [
        roller.randint(1, parsed.dice_sides) for _ in range(max(parsed.dice_count, 0))
    ]
    subtotal = sum(individual_rolls)

    return DiceExpressionResult(
        expression=parsed.original,
        individual_rolls=individual_rolls,
        subtotal=subtotal,
        modifier=parsed.modifier,
        total=subtotal + parsed.modifier,
    )


def roll_expression(expr: str, rng: random.Random | None = None) -> DiceExpressionResult:
    """Convenience: parse + evaluate in one call."""
    return evaluate(parse_expression(expr), rng)
