"""
Inspection module - contains utilities for inspecting the state of model rows.
"""
import typing


def get_pk(row) -> typing.Any:
    """
    Gets the primary key of a row.

    :param row: The model instance to extract the PK from.
    """
    return row.primary_key


def get_old_pk(row) -> typing.Any:
    """
    Gets the primary key the row had when it was last saved or loaded. Updates target this key,
    so that changing the primary key of a saved row is written as a key change.

    :param row: The model instance to inspect.
    """
    return row._old_pk


def is_new(row) -> bool:
    """
    :return: If the row has not been inserted yet.
    """
    return not _get_mangled(row, "existed")


def is_deleted(row) -> bool:
    """
    :return: If the row has been deleted.
    """
    return _get_mangled(row, "deleted")


# marker methods
def _set_mangled(row, name: str, mark: typing.Any):
    setattr(row, "_Model__{}".format(name), mark)
    return row


def _get_mangled(row, name: str):
    return getattr(row, "_Model__{}".format(name))
