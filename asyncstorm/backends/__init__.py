"""
SQL driver backends for asyncstorm.

.. currentmodule:: asyncstorm.backends

.. autosummary::
    :toctree:

    sqlite3

"""
from pkgutil import extend_path

__path__ = extend_path(__path__, __name__)
