from __future__ import annotations


INVALID_GEOJSON_MESSAGE = "Input data is not a valid GeoJSON object."


class GeoJSONWorkerError(Exception):
    """Base class for failures reported back through a worker request."""


class InvalidInputError(GeoJSONWorkerError):
    """Literal input is missing, unparsable, or not a GeoJSON object."""

    def __init__(self, message: str = INVALID_GEOJSON_MESSAGE):
        super().__init__(message)


class FetchError(GeoJSONWorkerError):
    """Fetching or decoding remote data failed; the message is the fetcher's."""


class IndexBuildError(GeoJSONWorkerError):
    """An index engine rejected the data."""


class NotClusteredError(GeoJSONWorkerError):
    """A cluster query was made against a source indexed in tile mode."""
