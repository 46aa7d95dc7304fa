"""
Error taxonomy for the IDS scenario generator.

Every configuration error is fatal at scenario-build time and is raised before
any simulated time advances. Engine-level failures are never wrapped here;
they propagate to the caller unchanged.
"""


class ConfigurationError(ValueError):
    """A malformed scenario that would produce an unusable dataset."""


class TopologyError(ConfigurationError):
    """Disconnected topology or a zero population for a mandatory role."""


class AddressSpaceExhaustedError(ConfigurationError):
    """The address pool cannot hold the next subnet."""


class UnresolvedServiceError(ConfigurationError, KeyError):
    """A generator asked for a service label that is not registered."""

    def __str__(self) -> str:
        # KeyError would otherwise quote the message
        return str(self.args[0]) if self.args else ""


class TimelineConflictError(ConfigurationError):
    """Invalid descriptor interval or colliding exclusive attack windows."""


class UnknownAttackError(ConfigurationError):
    """An archetype name that is not in the attack catalog."""
