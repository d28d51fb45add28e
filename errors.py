class IncidentLoadError(Exception):
    """Base class for every error that aborts a load run."""


class MissingSourceCRS(IncidentLoadError):
    pass


class UnknownCoordinateSystem(IncidentLoadError):
    pass


class UnsupportedGeometryType(IncidentLoadError):
    pass


class AttributesUnavailable(IncidentLoadError):
    pass


class MalformedFeature(IncidentLoadError):
    pass


class MalformedTimestamp(IncidentLoadError):
    pass


class PersistenceFailure(IncidentLoadError):
    pass


class SourceUnavailable(IncidentLoadError):
    pass
