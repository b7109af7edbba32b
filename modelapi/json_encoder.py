# modelapi to json encoding

import datetime
import decimal
from flask.json.provider import DefaultJSONProvider
from sqlalchemy import inspect as sqla_inspect
from uuid import UUID
import modelapi
from .config import is_debug
from .links import Route
from .metadata import registry


def encode_object(obj) -> dict:
    """
    :param obj: mapped instance
    :return: external attribute name => value, for the exposed attributes of `obj`
    """
    result = {}
    for attr in registry.get(type(obj)).attributes.values():
        if attr.is_association:
            continue
        value = getattr(obj, attr.key, None)
        if attr.render is not None:
            value = attr.render(value)
        result[attr.ext_key] = value
    return result


class _ModelAPIJSONEncoder:
    """
    JSON encoding for mapped instances, links and common types
    """

    # pylint: disable=too-many-return-statements,logging-format-interpolation
    def default(self, obj, **kwargs):
        """
        override the default json encoding
        :param obj: object to be encoded
        :return: encoded/serialized object
        """
        if obj is None:
            return None
        if isinstance(obj, datetime.timedelta):
            return str(obj)
        if isinstance(obj, datetime.datetime):
            return obj.isoformat(" ")
        if isinstance(obj, (datetime.date, datetime.time)):
            return obj.isoformat()
        if isinstance(obj, set):
            return list(obj)
        if isinstance(obj, UUID):
            return str(obj)
        if isinstance(obj, decimal.Decimal):
            return float(obj)
        if isinstance(obj, Route):
            return obj.url()
        if isinstance(obj, bytes):  # pragma: no cover
            if obj == b"":
                return ""
            modelapi.log.debug("ModelAPIJSONEncoder: serializing bytes obj")
            return obj.hex()
        if sqla_inspect(type(obj), raiseerr=False) is not None:
            return encode_object(obj)

        # We shouldn't get here in a normal setup
        if not is_debug():  # pragma: no cover
            modelapi.log.warning(f'JSON Encoding Error: Unknown object type "{type(obj)}" for {obj}')
            return {"error": "ModelAPIJSONEncoder invalid object"}
        return str(obj)


class ModelAPIJSONProvider(_ModelAPIJSONEncoder, DefaultJSONProvider):
    """
    Flask JSON encoding
    """

    # keep the declaration order of the attributes
    sort_keys = False
