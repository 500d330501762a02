"""
Sound selection with an anti-repeat bias.

Every candidate gets weight 1.0 except the clip that played last, which gets a
reduced weight (0.5 by default) when anti-repeat is enabled. The reduced weight
makes an immediate repeat less likely without ruling it out.
"""

import logging
import random
from typing import Optional, Sequence

from .constants import REPEAT_WEIGHT
from .errors import EmptyGroupError

logger = logging.getLogger(__name__)


class Selector:
    """Picks the next clip from a group."""

    def __init__(self, rng: Optional[random.Random] = None, repeat_weight: float = REPEAT_WEIGHT) -> None:
        """
        Initialize the selector.

        Args:
            rng: Random source (pass a seeded random.Random for reproducible picks)
            repeat_weight: Weight of the previously played clip; every other clip weighs 1.0
        """
        self.rng = rng or random.Random()
        self.repeat_weight = repeat_weight

    def calculate_weights(self, candidates: Sequence[str], last_played: Optional[str]) -> list[float]:
        """
        Calculate selection weights for the candidates.

        Args:
            candidates: Clip identifiers in group order
            last_played: Clip played on the previous hit, or None

        Returns:
            One weight per candidate, in the same order
        """
        return [self.repeat_weight if c == last_played else 1.0 for c in candidates]

    def pick(self, candidates: Sequence[str], last_played: Optional[str], anti_repeat: bool) -> str:
        """
        Choose one clip.

        Args:
            candidates: Non-empty sequence of clip identifiers, in group order
            last_played: Clip played on the previous hit, or None
            anti_repeat: Whether to bias away from last_played

        Returns:
            The chosen clip identifier

        Raises:
            EmptyGroupError: If candidates is empty
        """
        if not candidates:
            raise EmptyGroupError()

        biased = (
            anti_repeat
            and last_played
            and last_played in candidates
            and len(candidates) > 1
        )
        if not biased:
            return candidates[self.rng.randrange(len(candidates))]

        weights = self.calculate_weights(candidates, last_played)
        roll = self.rng.random() * sum(weights)

        # Walk the cumulative weight intervals left to right
        for candidate, weight in zip(candidates, weights):
            if roll < weight:
                return candidate
            roll -= weight

        # Only reachable through floating point rounding
        logger.debug(f"Weighted scan exhausted (residual {roll:.6f}), falling back to first candidate")
        return candidates[0]
