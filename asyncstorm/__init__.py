"""
Main package for asyncstorm - a lazy asyncio ORM, with Django-style models and querysets.

.. currentmodule:: asyncstorm

.. autosummary::
    :toctree:

    db
    orm
    backends

    exc
    meta
"""

__licence__ = "MIT"
__status__ = "Development"

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version(__name__)
except PackageNotFoundError:
    # package is not installed
    pass

from asyncstorm.backends.base import BaseConnector, BaseDialect, BaseResultSet, BaseTransaction
# import helpers
from asyncstorm.db import DatabaseInterface
from asyncstorm.exc import *
from asyncstorm.orm.inspection import get_old_pk, get_pk, is_new
# orm
from asyncstorm.orm.manager import ModelManager
from asyncstorm.orm.operators import Q
from asyncstorm.orm.query import QuerySet
from asyncstorm.orm.related import RelatedManager, RelatedPlaceholder, SingleRelationship
from asyncstorm.orm.schema.column import Column
from asyncstorm.orm.schema.model import Model, ModelMetadata, model_base
from asyncstorm.orm.schema.relationship import ForeignKey, ManyToMany
from asyncstorm.orm.schema.types import Boolean, ColumnType, Integer, String, Text
from asyncstorm.orm.session import Session
