"""Typed access to incident shapefiles.

fiona does the binary parsing; this module turns its attribute bags into
``IncidentFeature`` values so the rest of the loader never looks at raw
property names.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Union

import fiona
from fiona.errors import FionaError
from shapely.errors import ShapelyError
from shapely.geometry import Point, shape

from errors import MalformedFeature, SourceUnavailable, UnsupportedGeometryType

# Plain 2D points only; the location column has no Z dimension.
POINT_SHAPE_TYPES = ("Point",)

# Shapefile attribute names.
OBJECT_ID_FIELD = "OBJECTID"
CATEGORY_FIELD = "FK_delito_"
DATE_FIELD = "fecha_ocur"
TIME_FIELD = "hora_ocurr"


@dataclass(frozen=True)
class IncidentFeature:
    object_id: int
    category_code: int
    occurred_on: Union[date, str, None]
    occurred_time: Union[str, None]
    geometry: Point


class ShapefileSource:
    """Single-pass view over an open fiona collection."""

    def __init__(self, collection, srid):
        self.collection = collection
        self.srid = srid

    @property
    def shape_type(self):
        return self.collection.schema.get("geometry")

    @property
    def is_point_type(self):
        return self.shape_type in POINT_SHAPE_TYPES

    @property
    def attributes_available(self):
        return bool(self.collection.schema.get("properties"))

    @property
    def size(self):
        return len(self.collection)

    def __iter__(self):
        features = iter(self.collection)
        while True:
            try:
                feature = next(features)
            except StopIteration:
                return
            except FionaError as error:
                raise SourceUnavailable(f"Cannot read shapefile feature: {error}") from error
            yield feature_from_fiona(feature)


@contextmanager
def open_source(path, srid):
    """Open ``path`` for reading; geometries are interpreted in ``srid``."""
    try:
        collection = fiona.open(str(path))
    except FionaError as error:
        raise SourceUnavailable(f"Cannot open shapefile {path}: {error}") from error
    with collection:
        yield ShapefileSource(collection, srid)


def feature_from_fiona(feature):
    """Build an IncidentFeature from a fiona feature."""
    return feature_from_parts(dict(feature.properties or {}), feature.geometry)


def feature_from_parts(properties, geometry):
    """Validate raw attributes and a geometry mapping."""
    object_id = _required_int(properties, OBJECT_ID_FIELD)
    if geometry is None:
        raise UnsupportedGeometryType(f"Feature {object_id} has no geometry")
    try:
        point = shape(geometry)
    except (ShapelyError, ValueError, AttributeError) as error:
        raise UnsupportedGeometryType(f"Feature {object_id} has an unreadable geometry") from error
    if point.geom_type != "Point":
        raise UnsupportedGeometryType(
            f"Feature {object_id} is a {point.geom_type}, expected Point"
        )
    if point.has_z:
        raise UnsupportedGeometryType(f"Feature {object_id} is a 3D point, expected 2D")
    time_value = properties.get(TIME_FIELD)
    return IncidentFeature(
        object_id=object_id,
        category_code=_required_int(properties, CATEGORY_FIELD),
        occurred_on=properties.get(DATE_FIELD),
        occurred_time=None if time_value is None else str(time_value),
        geometry=point,
    )


def _required_int(properties, field):
    value = properties.get(field)
    if value is None:
        raise MalformedFeature(f"Missing attribute {field}")
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise MalformedFeature(f"Attribute {field} is not an integer: {value!r}") from error
