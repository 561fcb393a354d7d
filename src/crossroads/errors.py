"""Exceptions raised by Crossroads."""


class CrossroadsError(Exception):
    """Base class for Crossroads errors."""


class DecisionValidationError(CrossroadsError, ValueError):
    """A selection did not match the current decision or its options.

    This is the only error the engine lets escape to callers; it points at a
    UI or synchronisation bug upstream. No state is changed when it is raised.
    """


class GenerationFailure(CrossroadsError):
    """The external decision generator raised or returned nothing usable."""


class InvalidGeneratedDecision(GenerationFailure):
    """A generated decision had an empty prompt or no options."""
