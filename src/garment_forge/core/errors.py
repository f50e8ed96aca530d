"""Domain errors raised by the core services and mapped to HTTP statuses by the API."""


class GarmentForgeError(Exception):
    """Base class for domain errors."""


class ParseError(GarmentForgeError, ValueError):
    """The vector source is not a well-formed SVG document."""


class ItemNotFoundError(GarmentForgeError, LookupError):
    pass


class TemplateNotFoundError(GarmentForgeError, LookupError):
    pass


class VariantNotFoundError(GarmentForgeError, LookupError):
    pass


class JobNotFoundError(GarmentForgeError, LookupError):
    pass


class ArtifactNotFoundError(GarmentForgeError, LookupError):
    pass


class MissingVectorSourceError(GarmentForgeError):
    """The item's template has no vector source to customize."""


class VariantLimitError(GarmentForgeError):
    """The item already holds the maximum number of variants."""


class JobStateError(GarmentForgeError):
    """The requested job transition is not allowed from its current status."""
