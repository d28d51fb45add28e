from functools import lru_cache

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.ops import transform

from errors import UnknownCoordinateSystem

# Stored locations are always WGS84.
TARGET_SRID = 4326


def resolve(srid):
    """Return the EPSG definition for ``srid``."""
    if srid is None:
        raise UnknownCoordinateSystem("SRID must be specified")
    try:
        return _crs_from_epsg(int(srid))
    except (CRSError, TypeError, ValueError) as error:
        raise UnknownCoordinateSystem(f"Unknown SRID {srid}") from error


def resolve_target():
    """Return the definition of the geographic system locations are stored in."""
    return _crs_from_epsg(TARGET_SRID)


@lru_cache(maxsize=None)
def _crs_from_epsg(code):
    return CRS.from_epsg(code)


@lru_cache(maxsize=None)
def transformer_for(source, target):
    """Build (once) the transformer between two coordinate systems."""
    return Transformer.from_crs(source, target, always_xy=True)


def reproject_point(point, source, target):
    """Reproject a shapely point from ``source`` into ``target``."""
    return transform(transformer_for(source, target).transform, point)
