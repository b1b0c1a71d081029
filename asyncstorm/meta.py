"""
Metaclass helpers: coroutine-checking ABCs and type-level properties.
"""

import inspect
import typing
from abc import ABCMeta


class TypeProperty(object):
    """
    A property that is looked up on the class, even when accessed through an instance.
    """

    def __init__(self, fget):
        """
        :param fget: The classmethod to call on getting the property.
        """
        self.fget = fget
        self.name = None

    def __set_name__(self, owner, name):
        self.name = name

    def __get__(self, instance, owner):
        if owner is None:
            owner = type(instance)

        return self.fget.__get__(instance, owner)()


def typeproperty(func: typing.Callable[[], typing.Any]) -> TypeProperty:
    """
    Marks a function as a type property.
    """
    if not isinstance(func, (classmethod, staticmethod)):
        func = classmethod(func)

    return TypeProperty(func)


# Adapted from https://github.com/dabeaz/curio/blob/master/curio/meta.py
# Copyright (C) David Beazley (Dabeaz LLC)
# This code is licenced under the MIT licence.

class AsyncABCMeta(ABCMeta):
    """
    An ABC metaclass that also refuses to let a subclass replace a coroutine method of a parent
    with a plain function.
    """

    def __init__(cls, name, bases, methods):
        coros = {}
        for base in reversed(cls.__mro__):
            coros.update((name, val) for name, val in vars(base).items()
                         if inspect.iscoroutinefunction(val))

        for name, val in vars(cls).items():
            if name in coros and not inspect.iscoroutinefunction(val):
                raise TypeError('Must use async def %s%s' % (name, inspect.signature(val)))
        super().__init__(name, bases, methods)


class AsyncABC(metaclass=AsyncABCMeta):
    pass
