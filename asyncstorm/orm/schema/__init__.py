"""
Code for ORM schema objects.

.. currentmodule:: asyncstorm.orm.schema

.. autosummary::
    :toctree:

    model
    column
    relationship

    types
    decorators

"""
