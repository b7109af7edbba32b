import datetime
import decimal
import sqlalchemy
import modelapi
from .query import column_python_type, parse_bool, parse_date, parse_decimal, parse_time


def parse_attr(column, attr_val):
    """
    Parse the supplied `attr_val` so it can be saved in the SQLAlchemy `column`,
    this is the default parse transform of column attributes

    :param column: SQLAlchemy column
    :param attr_val: request body value
    :return: processed value
    :raises ValueError: if the value can't be converted to the column type
    """
    if attr_val is None:
        default = column.default
        if default is not None and default.is_scalar:
            return default.arg
        return None

    if getattr(column, "python_type", None):
        # It's possible for a column to specify a custom python_type to use for deserialization
        return column.python_type(attr_val)

    python_type = column_python_type(column)
    if python_type is None:
        # custom type, the model should declare a parse transform if this isn't good enough
        modelapi.log.debug(f"No python type for column {column.name}")
        return attr_val

    # skip type coercion on JSON columns, since they could be anything
    if isinstance(column.type, sqlalchemy.types.JSON):
        return attr_val

    if python_type is bool:
        return parse_bool(attr_val)
    if python_type is datetime.datetime:
        if isinstance(attr_val, datetime.datetime):
            return attr_val
        date_str = str(attr_val).strip()
        if date_str[-1:] in ("Z", "z"):
            date_str = date_str[:-1] + "+00:00"
        return datetime.datetime.fromisoformat(date_str)
    if python_type is datetime.date:
        return parse_date(attr_val)
    if python_type is datetime.time:
        return parse_time(attr_val)
    if python_type is int:
        if isinstance(attr_val, bool):
            raise ValueError(f'Invalid integer value "{attr_val}"')
        number = parse_decimal(attr_val)
        if number != number.to_integral_value():
            raise ValueError(f'Invalid integer value "{attr_val}"')
        return int(number)
    if python_type is float:
        return float(parse_decimal(attr_val))
    if python_type is decimal.Decimal:
        return parse_decimal(attr_val)
    if python_type is str:
        if isinstance(attr_val, (dict, list)):
            raise ValueError(f'Invalid text value "{attr_val}"')
        return str(attr_val)
    return python_type(attr_val)
