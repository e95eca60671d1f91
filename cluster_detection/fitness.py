"""Poisson significance test and fitness scoring for candidate circles.

The right-tail Poisson probability P(X >= cases | expected) is evaluated with
a forward recurrence over a precomputed reciprocal table, which avoids
factorials and repeated division:

    p[0] = exp(-expected)
    p[j] = expected * (1 / j) * p[j - 1]
    prob = 1 - sum(p[0:floor(cases)])

Beyond ``MAX_CASES`` the table is not extended; the tail is approximated
with the normal distribution instead.
"""

import math
import warnings
from enum import Enum
from typing import Optional, Union

import numpy as np


MAX_CASES = 300


class FitnessKind(Enum):
    """Formula used to score a significant circle."""
    POISSON = "poisson"
    RELATIVE = "relative"
    RELATIVE_PERCENT = "relative_percent"

    @classmethod
    def parse(cls, value: Union[str, "FitnessKind"]) -> "FitnessKind":
        """Parse a fitness kind from an enum member or a case-insensitive name.

        Raises:
            ValueError: If the name is unknown.
        """
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace("-", "_")
        if key == "relativepercent":
            key = "relative_percent"
        for kind in cls:
            if kind.value == key:
                return kind
        raise ValueError(
            f"Unknown fitness function: {value}. "
            f"Must be one of: {', '.join(k.value for k in cls)}"
        )


class FitnessFunction:
    """Poisson-based significance evaluator.

    Args:
        kind: Fitness formula (default: Poisson).
        threshold: Maximum tail probability accepted as significant (default: 0.01).
        min_expected: Minimum expected count worth testing (default: 1).
        min_cases: Minimum observed count worth testing (default: 1).
    """

    def __init__(
        self,
        kind: Union[str, FitnessKind] = FitnessKind.POISSON,
        threshold: float = 0.01,
        min_expected: int = 1,
        min_cases: int = 1
    ):
        self.kind = FitnessKind.parse(kind)
        self.threshold = float(threshold)
        self.min_expected = min_expected
        self.min_cases = min_cases

        # recip[i] = 1 / i, slot 0 unused
        self.recip = np.zeros(MAX_CASES)
        self.recip[1:] = 1.0 / np.arange(1, MAX_CASES)

    def is_worth_testing(self, expected: float, cases: float) -> bool:
        """Cheap pre-filter: only circles with at least the expected count can be clusters."""
        return (
            expected <= cases
            and expected >= self.min_expected
            and cases >= self.min_cases
        )

    def tail_probability(self, expected: float, cases: float) -> float:
        """Probability of observing at least ``floor(cases)`` events given ``expected``."""
        j_a = int(math.floor(cases))

        if j_a >= MAX_CASES:
            warnings.warn(
                f"Case count {j_a} exceeds the Poisson table size ({MAX_CASES}); "
                f"using the normal approximation."
            )
            z = (j_a - 0.5 - expected) / math.sqrt(2.0 * expected)
            # never above the last tail the table can compute exactly
            return min(0.5 * math.erfc(z), self.tail_probability(expected, MAX_CASES - 1))

        if j_a <= 1:
            return 1.0 - math.exp(-expected)

        term = math.exp(-expected)
        total = term
        for j in range(1, j_a):
            term = expected * self.recip[j] * term
            total += term
        # rounding in the sum can leave a tiny negative remainder
        return max(0.0, 1.0 - total)

    def stat(self, expected: float, cases: float) -> Optional[float]:
        """Fitness of a circle, or None when it is not significant.

        Args:
            expected: Expected case count under the null hypothesis.
            cases: Observed case count.

        Returns:
            Fitness score, or None if the tail probability exceeds the threshold
            or ``expected`` is not positive.
        """
        if not expected > 0:
            return None

        prob = self.tail_probability(expected, cases)
        if prob > self.threshold:
            return None

        if self.kind is FitnessKind.POISSON:
            return 1.0 - prob
        elif self.kind is FitnessKind.RELATIVE:
            return cases - expected
        elif self.kind is FitnessKind.RELATIVE_PERCENT:
            return cases / expected
        raise ValueError(f"Unhandled fitness function: {self.kind}")
