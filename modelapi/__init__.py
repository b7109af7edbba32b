# flake8: noqa: F401
#
# modelapi_init has to be imported first: the other modules use modelapi.log and modelapi.DB
#
from .modelapi_init import DB, log, ModelAPI
from .errors import (
    Status,
    ModelAPIError,
    ValidationError,
    GenericError,
    UnAuthorizedError,
    NotFoundError,
    BadPayloadError,
    BadRequestError,
    NotImplementedAPIError,
    normalize_errors,
)
from .context import Operation, RequestContext
from .api_attr import api_attr
from .metadata import registry, AttributeMetadata, ModelMetadata, AttributeMetadataRegistry
from .parameters import ParameterParser, FilterPredicate, SortSpec
from .query import QueryBuilder
from .pagination import paginate, PaginationState
from .links import LinkAssembler, LinkSet, Route
from .persistence import Persistence, SessionPersistence
from .mutation import MutationPipeline, MutationOutcome
from .request import ModelAPIRequest
from .json_encoder import ModelAPIJSONProvider
from .resource import ModelResource, http_method_decorator
from .api import ModelAPIRestApi
from .__about__ import __version__, __description__

__all__ = (
    "__version__",
    "__description__",
    #
    "ModelAPI",
    "ModelAPIRestApi",
    "ModelResource",
    "DB",
    "log",
    # metadata:
    "api_attr",
    "registry",
    "AttributeMetadata",
    "ModelMetadata",
    "AttributeMetadataRegistry",
    # request processing:
    "RequestContext",
    "Operation",
    "ParameterParser",
    "FilterPredicate",
    "SortSpec",
    "QueryBuilder",
    "paginate",
    "PaginationState",
    "LinkAssembler",
    "LinkSet",
    "Route",
    "MutationPipeline",
    "MutationOutcome",
    "Persistence",
    "SessionPersistence",
    "ModelAPIRequest",
    "ModelAPIJSONProvider",
    "http_method_decorator",
    # Errors:
    "Status",
    "normalize_errors",
    "ModelAPIError",
    "ValidationError",
    "GenericError",
    "UnAuthorizedError",
    "NotFoundError",
    "BadPayloadError",
    "BadRequestError",
    "NotImplementedAPIError",
)
