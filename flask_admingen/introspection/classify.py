"""
Column type classification

Maps storage level column types into the closed set of UI field kinds.
SQLAlchemy types are matched on their class hierarchy, string tags
(Inspector-like metadata) on their normalized name.
"""

import logging
import re

from sqlalchemy import types

from ..exceptions import ClassificationSkipped
from ..schema import FieldKind
from .descriptors import RawColumn

log = logging.getLogger(__name__)

# Order matters, first isinstance match wins
SQLA_KIND_MAP = (
    (types.Boolean, FieldKind.BOOLEAN),
    (types.Integer, FieldKind.NUMBER),
    (types.Float, FieldKind.NUMBER),
    (types.Numeric, FieldKind.NUMBER),
    (types.DateTime, FieldKind.DATE),
    (types.Date, FieldKind.DATE),
    (types.String, FieldKind.TEXT),
    (types.Uuid, FieldKind.TEXT),
)

TEXT_TAGS = {"string", "varchar", "char", "nvarchar", "nchar", "text", "uuid", "enum"}
LONG_TEXT_TAGS = {"long_text", "textarea"}
NUMBER_TAGS = {
    "number", "integer", "int", "bigint", "big_integer", "smallint", "small_integer",
    "numeric", "decimal", "float", "real", "double",
}
BOOLEAN_TAGS = {"boolean", "bool"}
DATE_TAGS = {"date", "datetime", "timestamp"}

_length_suffix_re = re.compile(r"\(.*\)$")


def _normalize_tag(tag: str) -> str:
    return _length_suffix_re.sub("", tag.strip().lower()).strip()


def classify_type_tag(tag: str) -> FieldKind:
    normalized = _normalize_tag(tag)
    if normalized in LONG_TEXT_TAGS:
        return FieldKind.LONG_TEXT
    if normalized in TEXT_TAGS:
        return FieldKind.TEXT
    if normalized in NUMBER_TAGS:
        return FieldKind.NUMBER
    if normalized in BOOLEAN_TAGS:
        return FieldKind.BOOLEAN
    if normalized in DATE_TAGS:
        return FieldKind.DATE
    raise ClassificationSkipped("?", tag)


def classify_sql_type(sql_type: types.TypeEngine) -> FieldKind:
    for type_class, kind in SQLA_KIND_MAP:
        if isinstance(sql_type, type_class):
            return kind
    # custom decorated types are classified by their implementation type
    if isinstance(sql_type, types.TypeDecorator) and not isinstance(
        sql_type, types.Interval
    ):
        return classify_sql_type(sql_type.impl_instance)
    raise ClassificationSkipped("?", type(sql_type).__name__)


def classify_column(column: RawColumn) -> FieldKind:
    """
    Classify a column into a scalar field kind.

    :param column: The normalized column
    :return: The scalar :class:`FieldKind`, never ``RELATION``
    :raises ClassificationSkipped: when the storage type is not supported
    """
    try:
        if column.sql_type is not None:
            kind = classify_sql_type(column.sql_type)
        else:
            kind = classify_type_tag(column.type_tag)
    except ClassificationSkipped:
        raise ClassificationSkipped(column.name, column.type_tag) from None
    if kind == FieldKind.TEXT and column.long_text:
        return FieldKind.LONG_TEXT
    return kind
