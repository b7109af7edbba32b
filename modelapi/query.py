# -*- coding: utf-8 -*-
"""
    query.py: apply filter predicates and sort specs to an SQLAlchemy query

The QueryBuilder is request scoped: it remembers the association joins it added so
filters and sorts through the same association share a single (aliased) join.
"""
# pylint: disable=logging-format-interpolation
import datetime
import decimal
from zoneinfo import ZoneInfo
import sqlalchemy
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import aliased
from sqlalchemy.orm.interfaces import MANYTOONE
from sqlalchemy.sql import operators, visitors
from sqlalchemy.sql.elements import BinaryExpression
import modelapi
from .config import get_config
from .errors import GenericError, NotFoundError
from .metadata import is_to_one, model_name, registry as default_registry, soft_delete_kind
from .parameters import DESC
from .util import OnceCache

TRUE_VALUES = ("1", "t", "true", "y", "yes", "on")
FALSE_VALUES = ("0", "f", "false", "n", "no", "off")
DB_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"
COMPARISON_OPERATORS = ("=", "!=", ">", "<", ">=", "<=")


def resolve_time_zone(ctx=None) -> datetime.tzinfo:
    """
    :return: the time zone of the principal, the configured DEFAULT_TIME_ZONE otherwise
    """
    candidates = (getattr(ctx, "user_time_zone", None), get_config("DEFAULT_TIME_ZONE"))
    for name in candidates:
        if not name:
            continue
        try:
            return ZoneInfo(str(name))
        except (KeyError, ValueError) as exc:
            modelapi.log.warning(f'Invalid time zone "{name}": {exc}')
    return datetime.timezone.utc


def column_python_type(column):
    try:
        return column.type.python_type
    except NotImplementedError:
        # custom column types
        return None


def parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f'Invalid boolean value "{value}"')


def parse_decimal(value) -> decimal.Decimal:
    try:
        result = decimal.Decimal(str(value).strip())
    except decimal.InvalidOperation:
        raise ValueError(f'Invalid numeric value "{value}"')
    if not result.is_finite():
        raise ValueError(f'Invalid numeric value "{value}"')
    return result


def parse_datetime(value, time_zone: datetime.tzinfo, aware: bool = False) -> datetime.datetime:
    """
    Parse `value` in `time_zone` (unless it carries an offset) and convert it to UTC
    """
    if isinstance(value, datetime.datetime):
        result = value
    elif isinstance(value, datetime.date):
        result = datetime.datetime.combine(value, datetime.time())
    else:
        text = str(value).strip()
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        result = datetime.datetime.fromisoformat(text)
    if result.tzinfo is None:
        result = result.replace(tzinfo=time_zone)
    result = result.astimezone(datetime.timezone.utc)
    return result if aware else result.replace(tzinfo=None)


def parse_date(value) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    text = str(value).strip()
    if len(text) > 10:
        return datetime.datetime.fromisoformat(text).date()
    return datetime.date.fromisoformat(text)


def parse_time(value) -> datetime.time:
    if isinstance(value, datetime.time):
        return value
    return datetime.time.fromisoformat(str(value).strip())


def typed_value(column, value, time_zone: datetime.tzinfo = datetime.timezone.utc):
    """
    Convert a request value to the python type of `column`
    :raises ValueError: when the value can't be converted
    """
    if value is None:
        return None
    python_type = column_python_type(column)
    if python_type is bool:
        return parse_bool(value)
    if python_type is datetime.datetime:
        return parse_datetime(value, time_zone, aware=bool(getattr(column.type, "timezone", False)))
    if python_type is datetime.date:
        return parse_date(value)
    if python_type is datetime.time:
        return parse_time(value)
    if python_type is int:
        number = parse_decimal(value)
        return int(number) if number == number.to_integral_value() else number
    if python_type is float:
        return float(parse_decimal(value))
    if python_type is decimal.Decimal:
        return parse_decimal(value)
    if python_type is str:
        return str(value)
    return value


def format_number(number: decimal.Decimal) -> str:
    """
    decimal text without a spurious trailing ".0"
    """
    if number == number.to_integral_value():
        return str(int(number))
    return format(number.normalize(), "f")


def format_value_for_query(column, value, time_zone: datetime.tzinfo = datetime.timezone.utc) -> str:
    """
    :param column: filtered column
    :param value: request value
    :param time_zone: zone date/time values are interpreted in
    :return: value formatted for the column type
    """
    python_type = column_python_type(column)
    if python_type is bool:
        return "true" if parse_bool(value) else "false"
    if python_type is datetime.datetime:
        return parse_datetime(value, time_zone).strftime(DB_DATETIME_FORMAT)
    if python_type is datetime.date:
        return parse_date(value).isoformat()
    if python_type is datetime.time:
        return parse_time(value).strftime("%H:%M:%S")
    if python_type in (int, float, decimal.Decimal):
        return format_number(parse_decimal(value))
    return str(value)


def literal_value(column, value, time_zone: datetime.tzinfo = datetime.timezone.utc):
    """
    :return: SQL literal for `value`, formatted for the column type
    """
    text = format_value_for_query(column, value, time_zone)
    python_type = column_python_type(column)
    if python_type is bool:
        return sqlalchemy.true() if text == "true" else sqlalchemy.false()
    if python_type in (int, float, decimal.Decimal):
        # validated numeric text
        return sqlalchemy.literal_column(text)
    return sqlalchemy.literal(text)


def resolve_column(model_class, attr):
    """
    :return: name of the mapped column backing `attr`: its key or its render_method, None if there is none
    """
    if attr is None:
        return None
    column_keys = sqla_inspect(model_class).column_attrs.keys()
    if attr.key in column_keys:
        return attr.key
    if isinstance(attr.render_method, str) and attr.render_method in column_keys:
        return attr.render_method
    return None


def belongs_to_keys(model_class) -> frozenset:
    """
    :return: names of the foreign key columns of the many-to-one relationships of `model_class`
    """
    mapper = sqla_inspect(model_class)
    return frozenset(column.name for rel in mapper.relationships if rel.direction is MANYTOONE for column in rel.local_columns)


def exists(query) -> bool:
    return query.first() is not None


class QueryBuilder:
    """
    Narrow and order a query with parsed predicates and sort specs
    """

    # model class => belongs-to foreign key names, built once per class
    foreign_key_cache = OnceCache("foreign keys")

    def __init__(self, ctx, registry=default_registry) -> None:
        self.ctx = ctx
        self.registry = registry
        self.time_zone = resolve_time_zone(ctx)
        # filters and sorts on attributes without a backing column
        self.result_filters = {}
        self.result_sorts = {}
        self._joins = {}

    @property
    def model_class(self):
        return self.ctx.model_class

    def join_association(self, query, model_class, path):
        """
        Join the associations in `path`, a path is joined only once
        :return: (query, entity to filter on, mapped class of the entity)
        """
        entity, entity_class = model_class, model_class
        for depth in range(1, len(path) + 1):
            sub_path = tuple(path[:depth])
            if sub_path not in self._joins:
                relationship = sqla_inspect(entity_class).relationships[sub_path[-1]]
                related_class = relationship.mapper.class_
                alias = aliased(related_class)
                query = query.join(getattr(entity, sub_path[-1]).of_type(alias))
                self._joins[sub_path] = (alias, related_class)
            entity, entity_class = self._joins[sub_path]
        return query, entity, entity_class

    def _path_class(self, model_class, path):
        for name in path:
            model_class = self.registry.get(model_class).attributes[name].association
        return model_class

    @staticmethod
    def _result_entry(results, path):
        for name in path:
            results = results.setdefault(name, {})
        return results

    def apply_filters(self, query, predicates, model_class=None):
        """
        :param query: sqla query
        :param predicates: FilterPredicate list
        :return: filtered query
        """
        model_class = model_class or self.model_class
        for predicate in predicates:
            query = self.apply_filter(query, predicate, model_class)
        return query

    def apply_filter(self, query, predicate, model_class):
        target_class = self._path_class(model_class, predicate.path)
        attr = predicate.attribute or self.registry.get(target_class).attributes.get(predicate.attribute_key)
        column_key = resolve_column(target_class, attr)
        if column_key is None:
            results = self._result_entry(self.result_filters, predicate.path)
            results.setdefault(predicate.attribute_key, []).append((predicate.operator, predicate.value))
            return query

        query, entity, target_class = self.join_association(query, model_class, predicate.path)
        column = sqla_inspect(target_class).column_attrs[column_key].columns[0]
        try:
            clause = self.filter_clause(getattr(entity, column_key), column, predicate)
        except (ValueError, TypeError, ArithmeticError) as exc:
            modelapi.log.warning(f'Ignoring filter {predicate.attribute_key} {predicate.operator} "{predicate.value}": {exc}')
            return query
        return query.filter(clause)

    def filter_clause(self, column_attr, column, predicate):
        """
        "=" on the root model is a native equality clause, the other operators compare
        with a literal formatted for the column type
        """
        operator = predicate.operator
        if operator == "=" and not predicate.path:
            return column_attr == typed_value(column, predicate.value, self.time_zone)
        if operator == "IN":
            return column_attr.in_([literal_value(column, value, self.time_zone) for value in predicate.value])
        if operator in COMPARISON_OPERATORS:
            return column_attr.op(operator)(literal_value(column, predicate.value, self.time_zone))
        raise ValueError(f"Invalid operator {operator}")

    def apply_sorts(self, query, sorts, model_class=None):
        """
        :param query: sqla query
        :param sorts: SortSpec list, in order of significance
        :return: ordered query
        """
        model_class = model_class or self.model_class
        for spec in sorts:
            target_class = self._path_class(model_class, spec.path)
            attr = spec.attribute or self.registry.get(target_class).attributes.get(spec.attribute_key)
            column_key = resolve_column(target_class, attr)
            if column_key is None:
                self._result_entry(self.result_sorts, spec.path)[spec.attribute_key] = spec.direction
                continue
            query, entity, _ = self.join_association(query, model_class, spec.path)
            column_attr = getattr(entity, column_key)
            query = query.order_by(column_attr.desc() if spec.direction == DESC else column_attr.asc())
        return query

    #
    # Base queries
    #
    def api_query(self, model_class=None):
        """
        :return: the read query of `model_class`: soft deleted rows are excluded and the context scope is applied
        """
        model_class = model_class or self.model_class
        query = modelapi.DB.session.query(model_class)
        column_name, kind = soft_delete_kind(model_class)
        if kind == "boolean":
            query = query.filter(getattr(model_class, column_name) == sqlalchemy.false())
        elif kind == "integer":
            query = query.filter(getattr(model_class, column_name) == 0)
        return self.apply_context(query, model_class)

    def apply_context(self, query, model_class=None):
        scope = self.ctx.scope
        if scope is None:
            return query
        if callable(scope):
            return scope(query, self.ctx)
        model_class = model_class or self.model_class
        for attr_name, value in scope.items():
            query = query.filter(getattr(model_class, attr_name) == value)
        return query

    def collection_query(self, model_class=None, query=None):
        """
        Rows are scoped to the acting principal unless
        - the caller opted out (user_filter False), or
        - the principal has elevated access and requests privileged content, or
        - the principal has elevated access and the query is already filtered by a belongs-to foreign key

        :param query: the (filtered) api_query, built when it's not provided
        """
        model_class = model_class or self.model_class
        if query is None:
            query = self.api_query(model_class)
        if self.ctx.user_filter is False:
            return query
        if self.ctx.admin and (self.ctx.admin_content or self.filtered_by_foreign_key(query, model_class)):
            return query
        return self.user_query(query, model_class)

    def object_query(self, model_class=None):
        """
        :return: query for the object addressed by the context id_attribute and id_value
        """
        ctx = self.ctx
        model_class = model_class or self.model_class
        id_attribute = ctx.id_attribute or "id"
        base_query = self.api_query(model_class)
        query = base_query.filter(self._equals(model_class, id_attribute, ctx.id_value))
        if not ctx.admin:
            if ctx.user_filter is not False:
                query = self.user_query(query, model_class)
        elif (
            id_attribute != "id"
            and not id_attribute.endswith(".id")
            and "id" in sqla_inspect(model_class).column_attrs.keys()
            and not exists(query)
        ):
            # Admins can also use the record id when the id attribute is something else
            query = base_query.filter(self._equals(model_class, "id", ctx.id_value))

        not_found_error = ctx.not_found_error
        if not_found_error and not exists(query):
            if callable(not_found_error):
                not_found_error = not_found_error(ctx.id_value)
            if not_found_error is True:
                human_name = model_name(model_class).replace("_", " ").capitalize()
                not_found_error = f"{human_name} '{ctx.id_value}' not found."
            raise NotFoundError(str(not_found_error), field=ctx.id_param)
        return query

    def _equals(self, model_class, attr_name, value):
        column_attrs = sqla_inspect(model_class).column_attrs
        if attr_name not in column_attrs.keys():
            return getattr(model_class, attr_name) == value
        column = column_attrs[attr_name].columns[0]
        try:
            value = typed_value(column, value, self.time_zone)
        except (ValueError, TypeError, ArithmeticError):
            modelapi.log.debug(f'Invalid {model_class.__name__}.{attr_name} value "{value}"')
            return sqlalchemy.false()
        return getattr(model_class, attr_name) == value

    def user_query(self, query, model_class=None):
        """
        Restrict `query` to the rows owned by the acting principal
        """
        model_class = model_class or self.model_class
        options = self.registry.get(model_class).options
        user_id = self.ctx.principal_id
        mapper = sqla_inspect(model_class)
        if options.user_id_column in mapper.column_attrs.keys():
            return query.filter(getattr(model_class, options.user_id_column) == user_id)

        relationships = {rel.key: rel for rel in mapper.relationships}
        relationship = relationships.get(options.user_association)
        if relationship is not None and is_to_one(relationship):
            user_mapper = relationship.mapper
            user_alias = aliased(user_mapper.class_)
            pk_name = user_mapper.get_property_by_column(user_mapper.primary_key[0]).key
            query = query.join(getattr(model_class, relationship.key).of_type(user_alias))
            return query.filter(getattr(user_alias, pk_name) == user_id)

        if self.ctx.user_filter:
            raise GenericError(
                f"Unable to filter results by user; no '{options.user_id_column}' column or '{options.user_association}' association found!"
            )
        return query

    def filtered_by_foreign_key(self, query, model_class=None) -> bool:
        """
        :return: True if the query has an equality criterion on a belongs-to foreign key column of `model_class`
        """
        model_class = model_class or self.model_class
        try:
            foreign_keys = self.foreign_key_cache.get(model_class, belongs_to_keys)
            criterion = query.whereclause
            if criterion is None or not foreign_keys:
                return False
            tables = sqla_inspect(model_class).tables
            for element in visitors.iterate(criterion):
                if not isinstance(element, BinaryExpression) or element.operator is not operators.eq:
                    continue
                left = element.left
                if getattr(left, "name", None) in foreign_keys and getattr(left, "table", None) in tables:
                    return True
        except (SQLAlchemyError, AttributeError) as exc:
            modelapi.log.warning(f"Exception encountered determining if query is filtered: {exc}")
        return False
