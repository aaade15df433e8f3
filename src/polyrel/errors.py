"""Exception types raised by polyrel.

Two failure classes are distinguished:
- ConfigurationError: malformed grid / M / equal-r / estimation options.
  Raised eagerly, before any per-marker work starts, and fatal to the call.
- InputValidityError: bad data for a specific sample pair (complexity < 1,
  allele index outside the frequency vector, more alleles than strains).
  The dataset driver catches these per pair and marks the cell missing.

Both subclass ValueError so callers can keep catching ValueError.
"""

from __future__ import annotations


class ConfigurationError(ValueError):
    """Invalid combination of estimation options."""


class InputValidityError(ValueError):
    """Input data cannot be evaluated under the observation model.

    Attributes:
        pair: Optional identifier of the sample pair, e.g. ("s1", "s7").
        marker: Optional 0-based index of the offending marker.
    """

    def __init__(
        self,
        message: str,
        pair: tuple | None = None,
        marker: int | None = None,
    ) -> None:
        self.reason = message
        self.pair = pair
        self.marker = marker
        context = []
        if pair is not None:
            context.append(f"pair={pair[0]}/{pair[1]}")
        if marker is not None:
            context.append(f"marker={marker}")
        if context:
            message = f"{message} ({', '.join(context)})"
        super().__init__(message)

    def with_pair(self, pair: tuple) -> InputValidityError:
        """Return a copy of this error annotated with pair identity."""
        return InputValidityError(self.reason, pair=pair, marker=self.marker)
