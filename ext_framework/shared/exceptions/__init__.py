"""
Shared exceptions for the plugin framework.

Defines the load-failure taxonomy and the HTTP handlers that render it.
"""

from .framework_exceptions import *
from .handlers import framework_exception_handler, register_exception_handlers

__all__ = [
    # Framework Exceptions
    'FrameworkErrors',
    'LoadStage',
    'FrameworkError',
    'ManifestNotFoundError',
    'SchemaActivationError',
    'UnknownSchemaTypeError',
    'InstantiationError',
    'RouteRegistrationError',
    'PluginLoadTimeoutError',

    # Exception Handlers
    'framework_exception_handler',
    'register_exception_handlers'
]
