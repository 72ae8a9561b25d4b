"""Parsing of confidential calculation requests."""

from privest.intake.parser import (
    CalculationInput,
    RunOptions,
    load_calculation_input,
    parse_calculation_input,
)

__all__ = [
    "CalculationInput",
    "RunOptions",
    "load_calculation_input",
    "parse_calculation_input",
]
