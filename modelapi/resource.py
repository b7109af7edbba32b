# -*- coding: utf-8 -*-
#
# Flask-RESTful resources serving a model class
#
#   GET    /products/       collection, filtered, sorted and paginated
#   POST   /products/       create
#   GET    /products/<id>/  object
#   PATCH  /products/<id>/  patch
#   PUT    /products/<id>/  update
#   DELETE /products/<id>/  destroy (or soft delete)
#
# Responses:
#   {"products": [...], "links": {...}, "meta": {...}}   collection
#   {"product": {...}, "links": {...}}                    object
#   {"errors": [{"error": ..., "message": ..., "field": ...}]}
#
# pylint: disable=logging-format-interpolation
import traceback
from functools import wraps
from http import HTTPStatus
import werkzeug
from flask import jsonify, make_response, request
from flask_restful import Resource, abort
import modelapi
from .config import is_debug
from .context import Operation, RequestContext
from .errors import GenericError, ModelAPIError, NotFoundError
from .json_encoder import encode_object
from .links import LinkAssembler, Route
from .metadata import collection_name, model_name
from .mutation import MutationPipeline
from .pagination import paginate
from .parameters import ParameterParser
from .persistence import SessionPersistence
from .query import QueryBuilder


class ModelResource(Resource):
    """
    Resource for the collection and the instances of `model_class`,
    applications subclass it to resolve the principal (current_user, admin_access)
    and to pass request context options (api_options)
    """

    model_class = None
    admin_only = False
    user_filter = None
    id_attribute = "id"
    id_param = "id"
    default_object_route = None

    def current_user(self):
        """
        :return: the acting principal, None for anonymous requests
        """
        return None

    def admin_access(self, user) -> bool:
        """
        :return: True if `user` has elevated access
        """
        return bool(getattr(user, "admin", False))

    def api_options(self) -> dict:
        """
        :return: RequestContext overrides, e.g. {"scope": {"shop_id": 1}}
        """
        return {}

    def common_links(self) -> dict:
        """
        :return: links added to all the responses of this resource
        """
        return {}

    def persistence(self):
        return SessionPersistence()

    def request_context(self, **overrides) -> RequestContext:
        user = self.current_user()
        admin = self.admin_access(user)
        ctx = RequestContext(
            model_class=self.model_class,
            user=user,
            admin=admin,
            admin_content=admin and request.admin_param,
            admin_only=self.admin_only,
            user_filter=self.user_filter,
            default_object_route=self.default_object_route,
            link_params={key: values if len(values) > 1 else values[0] for key, values in request.args.lists()},
            id_attribute=self.id_attribute,
            id_param=self.id_param,
        )
        return ctx.with_overrides(**self.api_options()).with_overrides(**overrides)

    @staticmethod
    def ensure_admin(ctx) -> None:
        """
        Mask admin only endpoints for other principals
        """
        if ctx.admin_only and not ctx.admin:
            raise NotFoundError()

    def object_route(self, ctx, assembler):
        if self.id_param in (request.view_args or {}):
            return Route.of(ctx.object_route) or Route(request.endpoint)
        return assembler.collection_object_route()

    def object_url(self, route, obj):
        if route is None:
            return None
        return route.url(**{self.id_param: getattr(obj, self.id_attribute)})

    def encode(self, obj, route=None) -> dict:
        data = encode_object(obj)
        url = self.object_url(route, obj)
        if url:
            data["links"] = {"self": url}
        return data

    #
    # HTTP methods
    #
    def get(self, **kwargs):
        """
        Retrieve the collection, or the object when an id is given
        """
        if self.id_param in kwargs:
            return self.render_object(kwargs[self.id_param])
        return self.render_collection()

    def post(self, **kwargs):
        """
        Create an object
        """
        if self.id_param in kwargs:
            abort(HTTPStatus.METHOD_NOT_ALLOWED, errors=[{"error": "Method not allowed", "message": "POSTing to an instance is not allowed"}])
        ctx = self.request_context(operation=Operation.CREATE)
        body, fmt = request.parse_request_body()
        pipeline = MutationPipeline(ctx, self.persistence(), link_assembler=LinkAssembler(ctx, self.common_links()))
        outcome = pipeline.create(body, fmt)
        return self.mutation_response(ctx, outcome, HTTPStatus.CREATED)

    def put(self, **kwargs):
        """
        Update an object
        """
        return self.do_update(kwargs.get(self.id_param), Operation.UPDATE)

    def patch(self, **kwargs):
        """
        Patch an object
        """
        return self.do_update(kwargs.get(self.id_param), Operation.PATCH)

    def delete(self, **kwargs):
        """
        Destroy (or soft delete) an object
        """
        ctx = self.request_context(operation=Operation.DESTROY, id_value=kwargs.get(self.id_param))
        pipeline = MutationPipeline(ctx, self.persistence(), link_assembler=LinkAssembler(ctx, self.common_links()))
        query = QueryBuilder(ctx).object_query()
        outcome = pipeline.destroy(query)
        return self.mutation_response(ctx, outcome, HTTPStatus.OK)

    def do_update(self, id_value, operation: Operation):
        ctx = self.request_context(id_value=id_value, operation=operation)
        body, fmt = request.parse_request_body()
        pipeline = MutationPipeline(ctx, self.persistence(), link_assembler=LinkAssembler(ctx, self.common_links()))
        query = QueryBuilder(ctx).object_query()
        outcome = pipeline.update(query, body, fmt)
        return self.mutation_response(ctx, outcome, HTTPStatus.OK)

    #
    # Rendering
    #
    def render_collection(self):
        ctx = self.request_context(operation=Operation.INDEX)
        self.ensure_admin(ctx)
        parser = ParameterParser(ctx)
        builder = QueryBuilder(ctx)

        query = builder.apply_filters(builder.api_query(), parser.filters(request.filter_params))
        query = builder.collection_query(query=query)
        query = builder.apply_sorts(query, parser.sorts(request.sort_by))

        assembler = LinkAssembler(ctx, self.common_links())
        route = Route.of(ctx.collection_route) or Route.current()
        page = ctx.page or request.page
        page_size = ctx.page_size or request.page_size
        query, state, page_links = paginate(query, page, page_size, route, ctx.link_params)

        object_route = assembler.collection_object_route(state.object_link_params)
        data = [self.encode(obj, object_route) for obj in query.all()]
        links = assembler.collection_links(page_links, state.collection_link_params)

        meta = {"total_count": state.total_count, "page": state.page, "page_size": state.page_size, "page_count": state.page_count}
        if builder.result_filters:
            meta["result_filters"] = builder.result_filters
        if builder.result_sorts:
            meta["result_sorts"] = builder.result_sorts

        result = {collection_name(self.model_class): data, "links": links.urls(), "meta": meta}
        response = make_response(jsonify(result), HTTPStatus.OK)
        response.headers["X-Total-Count"] = str(state.total_count)
        return response

    def render_object(self, id_value):
        ctx = self.request_context(operation=Operation.SHOW, id_value=id_value)
        self.ensure_admin(ctx)
        obj = QueryBuilder(ctx).object_query().first()
        if obj is None:
            raise NotFoundError(field=self.id_param)

        assembler = LinkAssembler(ctx, self.common_links())
        result = {model_name(self.model_class): encode_object(obj), "links": assembler.object_links().urls()}
        return make_response(jsonify(result), HTTPStatus.OK)

    def mutation_response(self, ctx, outcome, success_status):
        """
        :param outcome: MutationOutcome
        :param success_status: HTTP status of a successful mutation
        """
        if not outcome.successful:
            result = {"errors": outcome.errors}
            if outcome.ignored_fields:
                result["meta"] = {"ignored_fields": list(outcome.ignored_fields)}
            return make_response(jsonify(result), outcome.status.value)

        obj = outcome.object
        assembler = LinkAssembler(ctx, self.common_links())
        object_url = self.object_url(self.object_route(ctx, assembler), obj)
        data = encode_object(obj)
        if object_url:
            data["links"] = {"self": object_url}
        result = {model_name(self.model_class): data, "links": outcome.links.urls()}
        if outcome.ignored_fields:
            result["meta"] = {"ignored_fields": list(outcome.ignored_fields)}
        response = make_response(jsonify(result), success_status)
        if success_status == HTTPStatus.CREATED and object_url:
            response.headers["Location"] = object_url
        return response


def http_method_decorator(fun):
    """Decorator for the supported HTTP methods (get, post, put, patch, delete)
    - commit the database when the response is successful, rollback otherwise
    - convert all exceptions to an error list

    :param fun:
    :return: wrapped fun
    """

    @wraps(fun)
    def method_wrapper(*args, **kwargs):
        """Wrap the method and perform error handling
        :param *args:
        :param **kwargs:
        :return: result of the wrapped method
        """
        try:
            result = fun(*args, **kwargs)
            if getattr(result, "status_code", HTTPStatus.OK) < HTTPStatus.BAD_REQUEST:
                modelapi.DB.session.commit()
            else:
                modelapi.DB.session.rollback()
            return result

        except ModelAPIError as exc:
            status_code = exc.status_code
            errors = exc.errors

        except werkzeug.exceptions.HTTPException:
            modelapi.DB.session.rollback()
            raise

        except Exception as exc:
            modelapi.log.exception(exc)
            status_code = HTTPStatus.INTERNAL_SERVER_ERROR
            errors = GenericError(str(exc)).errors
            if is_debug():
                errors[0]["backtrace"] = traceback.format_exc().splitlines()

        modelapi.DB.session.rollback()
        modelapi.log.error(f"{status_code}: {errors}")
        abort(status_code, errors=errors)

    return method_wrapper
