"""
flask_restful Api subclass exposing model classes
"""
from flask_restful import Api
import modelapi
from .metadata import collection_name, model_name, registry
from .resource import ModelResource, http_method_decorator

COLLECTION_METHODS = ["GET", "POST"]
INSTANCE_METHODS = ["GET", "PATCH", "PUT", "DELETE"]


# pylint: disable=invalid-name,logging-format-interpolation
class ModelAPIRestApi(Api):
    """
    Subclass of the flask_restful Api class where we add the expose_model method,
    this method creates the collection and instance endpoints of a model class
    """

    def expose_model(self, model_class, url_prefix="", resource_class=ModelResource, **properties):
        """This method creates the API url endpoints for a model class
        :param model_class: SQLAlchemy mapped class we would like to expose
        :param url_prefix: api url prefix
        :param resource_class: ModelResource subclass, e.g. to resolve the current user
        :param properties: resource class attributes, e.g. admin_only=True

        creates a class of the form

        @api_decorator
        class Product_API(ModelResource):
            model_class = Product

        and adds it as an api resource to /products/ and /products/<id>/

        collection endpoint: collection_name(model_class), e.g. "products"
        instance endpoint: model_name(model_class), e.g. "product"
        """
        if not registry.get(model_class).options.expose:
            modelapi.log.info(f"{model_class.__name__} is not exposed")
            return None

        properties["model_class"] = model_class
        api_class_name = f"{model_class.__name__}_API"
        api_class = api_decorator(type(api_class_name, (resource_class,), properties))

        collection = collection_name(model_class)
        url = f"{url_prefix}/{collection}/"
        endpoint = collection
        modelapi.log.info(f"Exposing {model_class.__name__} on {url}, endpoint: {endpoint}")
        self.add_resource(api_class, url, endpoint=endpoint, methods=COLLECTION_METHODS)

        url = f"{url_prefix}/{collection}/<string:{api_class.id_param}>/"
        endpoint = model_name(model_class)
        modelapi.log.info(f"Exposing {model_class.__name__} instances on {url}, endpoint: {endpoint}")
        self.add_resource(api_class, url, endpoint=endpoint, methods=INSTANCE_METHODS)
        return api_class

    def expose(self, *model_classes, **kwargs):
        """
        Expose all `model_classes` with the same options
        """
        return [self.expose_model(model_class, **kwargs) for model_class in model_classes]


def api_decorator(cls):
    """Decorator for the API views: add generic exception handling to the HTTP methods

    :param cls: The class that will be decorated
    :return: decorated class
    """
    for method_name in ["get", "post", "put", "patch", "delete"]:  # HTTP methods
        method = getattr(cls, method_name, None)
        if not method:
            continue
        setattr(cls, method_name, http_method_decorator(method))
    return cls
