"""
Request argument and body parsing

Query arguments:
- sort_by, page, page_size, admin: reserved, see ModelAPI.RESERVED_PARAMS
- everything else is a filter argument

Body: JSON is the primary format, YAML bodies are accepted as well
(see mutation.object_from_request_body for the root element handling)
"""
import yaml
from flask import Request
from werkzeug.datastructures import MultiDict
import modelapi
from .config import get_config

YAML_CONTENT_TYPES = ("application/x-yaml", "application/yaml", "text/yaml", "text/x-yaml")


# pylint: disable=too-many-ancestors, logging-format-interpolation
class ModelAPIRequest(Request):
    """
    Parse the api request arguments and the request body
    """

    @property
    def filter_params(self) -> MultiDict:
        """
        :return: the query arguments without the reserved arguments
        """
        reserved = tuple(get_config("RESERVED_PARAMS") or ())
        return MultiDict([(k, v) for k, v in self.args.items(multi=True) if k not in reserved])

    @property
    def sort_by(self):
        return self.args.get("sort_by")

    @property
    def page(self):
        return self.args.get("page", type=int)

    @property
    def page_size(self):
        return self.args.get("page_size", type=int)

    @property
    def admin_param(self) -> bool:
        """
        :return: True if privileged content was requested (?admin=1)
        """
        return self.args.get("admin", 0, type=int) != 0

    @property
    def body_format(self) -> str:
        content_type = (self.mimetype or "").lower()
        if content_type in YAML_CONTENT_TYPES:
            return "yaml"
        return "json"

    def parse_request_body(self):
        """
        :return: (body, format), body is None when it's missing or can't be parsed
        """
        fmt = self.body_format
        if not self.get_data(cache=True):
            return None, fmt
        if fmt == "yaml":
            try:
                return yaml.safe_load(self.get_data(as_text=True)), fmt
            except yaml.YAMLError as exc:
                modelapi.log.warning(f"Invalid YAML payload: {exc}")
                return None, fmt
        body = self.get_json(force=True, silent=True)
        if body is None:
            modelapi.log.warning(f'Invalid JSON payload: "{self.get_data(as_text=True)[:1000]}"')
        return body, fmt
