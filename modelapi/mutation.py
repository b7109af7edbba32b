# -*- coding: utf-8 -*-
"""
    mutation.py: create, update, patch and destroy

    1. resolve the target class (a subclass named in the body for create)
    2. check the request body: a single object is required
    3. copy the writable attributes from the body to the object
    4. call the after_initialize hook with the (immutable) request context
    5. save or destroy with the persistence collaborator
    6. report a MutationOutcome: a Status and a list of error entries

Expected failures are returned as outcomes, they're not raised.
"""
# pylint: disable=logging-format-interpolation
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple
from sqlalchemy import inspect as sqla_inspect
from sqlalchemy.orm.exc import UnmappedColumnError
import modelapi
from .attr_parse import parse_attr
from .context import Operation
from .errors import BadPayloadError, NotFoundError, Status, bad_payload_message, normalize_errors, unspecified_error
from .links import LinkAssembler, LinkSet
from .metadata import find_class, model_name, registry as default_registry, soft_delete_kind
from .persistence import Persistence, SessionPersistence
from .util import camelize

PRIMARY_FORMAT = "json"


@dataclass(frozen=True)
class MutationOutcome:
    status: Status
    errors: list = field(default_factory=list)
    object: Any = None
    operation: Optional[Operation] = None
    ignored_fields: Tuple[str, ...] = ()
    # the (unwrapped) request object, rendered instead of the object when the mutation failed
    request_obj: Any = None
    links: LinkSet = field(default_factory=LinkSet)
    object_links: LinkSet = field(default_factory=LinkSet)

    @property
    def successful(self) -> bool:
        return self.status.successful


def verify_request_body(body: Any) -> Optional[str]:
    """
    :return: an error message if `body` isn't a single object
    """
    if isinstance(body, (list, tuple)):
        return "Expected object, but collection provided"
    if not isinstance(body, Mapping):
        return "Expected object"
    return None


def object_from_request_body(root: str, body: Mapping, fmt: str = PRIMARY_FORMAT) -> Optional[Mapping]:
    """
    The primary format body is the object itself, other formats may wrap it in a root element:
    the model name, "obj", or any single top-level key
    :return: the request object or None
    """
    if fmt == PRIMARY_FORMAT:
        request_obj = body
    else:
        request_obj = body.get(root)
        if not request_obj:
            request_obj = body.get("obj")
        if not request_obj and len(body) == 1:
            request_obj = next(iter(body.values()))
    if not request_obj or not isinstance(request_obj, Mapping):
        return None
    return request_obj


def discriminator_key(model_class) -> Optional[str]:
    """
    :return: name of the polymorphic discriminator attribute of `model_class`
    """
    mapper = sqla_inspect(model_class)
    if mapper.polymorphic_on is None:
        return None
    try:
        return mapper.get_property_by_column(mapper.polymorphic_on).key
    except (UnmappedColumnError, KeyError):
        return None


class MutationPipeline:
    """
    Create/update/destroy objects from parsed request bodies
    """

    def __init__(self, ctx, persistence: Persistence = None, registry=default_registry, link_assembler: LinkAssembler = None) -> None:
        self.ctx = ctx
        self.persistence = persistence if persistence is not None else SessionPersistence()
        self.registry = registry
        self.link_assembler = link_assembler or LinkAssembler(ctx)

    def resolve_operation(self, default: Operation, action: Optional[str] = None) -> Operation:
        """
        :param default: operation used when nothing else applies
        :param action: name of the invoked action
        :return: the explicit context operation, the operation the action name starts with, or `default`
        """
        if self.ctx.operation is not None:
            return Operation(self.ctx.operation)
        return Operation.from_action(action) or Operation(default)

    def resolve_target_class(self, model_class: type, request_obj: Any, operation: Operation) -> type:
        """
        :return: the subclass of `model_class` named by the type attribute of a create body, `model_class` otherwise
        """
        if operation is not Operation.CREATE or not isinstance(request_obj, Mapping):
            return model_class
        type_attribute = self.registry.get(model_class).options.type_attribute
        attr = self.registry.filtered(model_class, "create", self.ctx).get(type_attribute)
        if attr is None:
            return model_class
        type_name = request_obj.get(attr.ext_key)
        if attr.parse is not None and type_name is not None:
            try:
                type_name = attr.parse(type_name)
            except Exception as exc:  # the transform is application code
                modelapi.log.warning(
                    f'Error encountered parsing API input for attribute "{attr.ext_key}" ("{exc}"): "{str(type_name)[:1000]}" ... using raw value instead.'
                )
        if not type_name:
            return model_class
        type_name = camelize(str(type_name))
        if type_name == model_class.__name__:
            return model_class
        subclass = self.registry.subtypes(model_class).get(type_name)
        if subclass is None:
            modelapi.log.info(f'Unknown {model_class.__name__} type "{type_name}", using {model_class.__name__}')
            return model_class
        return subclass

    #
    # Outcomes
    #
    def _outcome(self, status: Status, errors=None, **kwargs) -> MutationOutcome:
        return MutationOutcome(
            status=status,
            errors=list(errors or []),
            links=self.link_assembler.update_links(),
            object_links=self.link_assembler.updated_object_links(),
            **kwargs,
        )

    def not_found(self, operation: Operation = None) -> MutationOutcome:
        errors = normalize_errors(NotFoundError.error, NotFoundError.message, field=self.ctx.id_param)
        return self._outcome(Status.NOT_FOUND, errors, operation=operation)

    def bad_payload(self, operation: Operation, fmt: str = PRIMARY_FORMAT, message: str = None) -> MutationOutcome:
        errors = normalize_errors(BadPayloadError.error, message or bad_payload_message(fmt))
        return self._outcome(Status.BAD_REQUEST, errors, operation=operation)

    #
    # Operations
    #
    def create(self, body: Any, fmt: str = PRIMARY_FORMAT, model_class: type = None, action: Optional[str] = None) -> MutationOutcome:
        """
        :param body: parsed request body, None if it couldn't be parsed
        :param fmt: format of the request body
        :return: MutationOutcome
        """
        operation = self.resolve_operation(Operation.CREATE, action)
        model_class = model_class or self.ctx.model_class
        if self.ctx.admin_only and not self.ctx.admin:
            return self.not_found(operation)
        return self._mutate(model_class, None, body, fmt, operation)

    def update(self, obj: Any, body: Any, fmt: str = PRIMARY_FORMAT, action: Optional[str] = None) -> MutationOutcome:
        """
        :param obj: object or query of the object to update
        """
        operation = self.resolve_operation(Operation.UPDATE, action)
        if self.ctx.admin_only and not self.ctx.admin:
            return self.not_found(operation)
        if hasattr(obj, "column_descriptions"):
            obj = obj.first()
        if obj is None:
            return self.not_found(operation)
        return self._mutate(find_class(obj), obj, body, fmt, operation)

    def patch(self, obj: Any, body: Any, fmt: str = PRIMARY_FORMAT) -> MutationOutcome:
        return self.update(obj, body, fmt, action=Operation.PATCH.value)

    def _mutate(self, model_class: type, obj: Any, body: Any, fmt: str, operation: Operation) -> MutationOutcome:
        if body is None:
            return self.bad_payload(operation, fmt)
        message = verify_request_body(body)
        if message:
            return self.bad_payload(operation, fmt, message)
        root = model_name(self.ctx.model_class or model_class)
        request_obj = object_from_request_body(root, body, fmt)
        if request_obj is None:
            return self.bad_payload(operation, fmt, "Invalid request format")

        if obj is None:
            model_class = self.resolve_target_class(model_class, request_obj, operation)
            obj = model_class()

        ctx = self.ctx.with_overrides(operation=operation, model_class=model_class)
        writable = self.registry.filtered(model_class, operation.purpose, ctx)
        ignored_fields, errors = self.apply_updates(obj, request_obj, writable)

        metadata = self.registry.get(model_class)
        after_initialize = metadata.hooks.get("after_initialize")
        if after_initialize is not None:
            after_initialize(obj, ctx)

        if not errors:
            errors = self.validate(obj, ctx)
        if errors:
            return self._outcome(
                Status.BAD_REQUEST, errors, object=obj, operation=operation, ignored_fields=tuple(ignored_fields), request_obj=request_obj
            )

        status, errors = self.save(obj, operation)
        return self._outcome(status, errors, object=obj, operation=operation, ignored_fields=tuple(ignored_fields), request_obj=request_obj)

    def parse_value(self, attr, value: Any) -> Any:
        if attr.parse is not None:
            return attr.parse(value)
        if attr.column is not None:
            return parse_attr(attr.column, value)
        return value

    def apply_updates(self, obj: Any, request_obj: Mapping, writable: Mapping) -> Tuple[list, list]:
        """
        Copy the writable attributes in `request_obj` to `obj`
        :param writable: create/update metadata
        :return: (ignored field names, field errors)
        """
        by_name = {}
        for attr in writable.values():
            if not attr.is_association:
                by_name[attr.ext_key] = attr
        for key, attr in writable.items():
            if not attr.is_association:
                by_name.setdefault(key, attr)

        discriminator = discriminator_key(type(obj))
        ignored_fields = []
        errors = []
        for name, value in request_obj.items():
            attr = by_name.get(str(name))
            if attr is None:
                ignored_fields.append(str(name))
                continue
            if attr.key == discriminator:
                # determined by the class
                continue
            try:
                value = self.parse_value(attr, value)
            except Exception as exc:  # the parse transform is application code
                modelapi.log.warning(f"Invalid value for {type(obj).__name__}.{attr.key}: {exc!r}")
                errors.append({"error": "Invalid value", "message": f'Invalid value for "{attr.ext_key}": {exc}', "field": attr.ext_key})
                continue
            setattr(obj, attr.key, value)

        if ignored_fields:
            modelapi.log.debug(f"Ignored fields for {type(obj).__name__}: {ignored_fields}")
        return ignored_fields, errors

    def validate(self, obj: Any, ctx) -> list:
        """
        :return: errors returned by the validate hook of the model
        """
        validate = self.registry.get(find_class(obj)).hooks.get("validate")
        if validate is None:
            return []
        errors = validate(obj, ctx)
        if not errors:
            return []
        return normalize_errors(errors)

    def save(self, obj: Any, operation: Operation) -> Tuple[Status, list]:
        if self.persistence.save(obj):
            return Status.OK, []
        errors = self.persistence.errors(obj)
        if not errors:
            errors = [unspecified_error(operation)]
        return Status.BAD_REQUEST, normalize_errors(errors)

    def destroy(self, obj: Any, action: Optional[str] = None) -> MutationOutcome:
        """
        Soft delete `obj` if its model has a soft delete marker, destroy it otherwise
        :param obj: object or query of the object to destroy
        """
        operation = self.resolve_operation(Operation.DESTROY, action)
        if self.ctx.admin_only and not self.ctx.admin:
            return self.not_found(operation)
        if hasattr(obj, "column_descriptions"):
            obj = obj.first()
        if obj is None:
            return self.not_found(operation)

        ctx = self.ctx.with_overrides(operation=operation, model_class=find_class(obj))
        errors = self.validate(obj, ctx)
        destroyed = False if errors else self.object_destroy(obj)

        if not errors and destroyed:
            return self._outcome(Status.OK, [], object=obj, operation=operation)
        errors = errors or normalize_errors(self.persistence.errors(obj))
        if errors:
            return self._outcome(Status.BAD_REQUEST, errors, object=obj, operation=operation)
        return self._outcome(Status.INTERNAL_ERROR, [unspecified_error(operation)], object=obj, operation=operation)

    def object_destroy(self, obj: Any) -> bool:
        """
        :return: True if the object has been soft deleted or if its removal was confirmed
        """
        model_class = find_class(obj)
        object_id = getattr(obj, self.ctx.id_attribute or "id", None)
        try:
            column_name, kind = soft_delete_kind(model_class)
            if kind == "boolean":
                setattr(obj, column_name, True)
                return self.persistence.save(obj)
            if kind == "integer":
                setattr(obj, column_name, 1)
                return self.persistence.save(obj)
            return bool(self.persistence.destroy(obj))
        except Exception as exc:  # destroy failures are reported as an outcome
            modelapi.log.warning(f'Error destroying {model_class.__name__} "{object_id}": "{exc}"')
            return False
