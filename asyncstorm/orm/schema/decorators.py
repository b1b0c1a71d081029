"""
Decorator helpers for models.
"""
import functools

from asyncstorm.exc import UsageError


def enforce_bound(func):
    """
    Enforces that a method on a :class:`.QuerySet` cannot be used before its model is bound to a
    database via :meth:`.DatabaseInterface.bind_models`.

    The check happens when the method is called, not when its coroutine is awaited.
    """

    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        if getattr(self.model.metadata, "bind", None) is None:
            raise UsageError("Model {} must be bound to a database first."
                             .format(self.model.__name__))
        return func(self, *args, **kwargs)

    return wrapper
