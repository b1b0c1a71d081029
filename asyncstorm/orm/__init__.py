"""
The core code for the ORM.

.. currentmodule:: asyncstorm.orm

.. autosummary::
    :toctree:

    schema

    query
    manager
    related
    session

    inspection
    operators

"""
