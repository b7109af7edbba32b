# Configuration settings should be set in app.config
# The ModelAPI class attributes and the environment are used as fallbacks
import os
import logging
from flask import current_app
from functools import lru_cache
import modelapi
from typing import Any


@lru_cache(maxsize=128)
def get_config(option: str) -> Any:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        # RuntimeError: working outside of the application context
        result = getattr(modelapi.ModelAPI, option, os.environ.get(option, None))
    return result


def get_int_config(option: str, default: int) -> int:
    """
    :param option: configuration parameter
    :param default: value to use when the option is missing or not numeric
    :return: integer configuration value
    """
    value = get_config(option)
    try:
        return int(value)
    except (TypeError, ValueError):
        modelapi.log.warning(f'Invalid integer configuration value for {option}: "{value}"')
        return default


def is_debug() -> bool:
    """
    We use the loglevel to check whether we're running in debug mode
    :return: whether the app is in debug mode
    :rtype: Boolean
    """
    return modelapi.log.getEffectiveLevel() < logging.INFO
