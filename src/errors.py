"""Exception types raised by the analysis core."""


class InputValidationError(ValueError):
    """Malformed numeric input handed to an engine.

    Raised for out-of-range sample sizes, consistencies and p-values,
    mismatched series lengths and inverted window bounds.  Sparse data is
    never reported through this exception; engines return ``None`` or an
    ``"insufficient"`` tier instead.
    """
