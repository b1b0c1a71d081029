"""
Model objects.
"""
import logging
import typing
from collections import OrderedDict

from asyncstorm import db as md_db
from asyncstorm.exc import NoSuchFieldError, SchemaError, UsageError, ValidationError
from asyncstorm.meta import typeproperty
from asyncstorm.orm import inspection as md_inspection, manager as md_manager, \
    related as md_related
from asyncstorm.orm.schema import column as md_column, relationship as md_relationship, \
    types as md_types

logger = logging.getLogger(__name__)


class ModelMetadata(object):
    """
    The root class for model metadata.
    This stores a registry of models, and is responsible for resolving relations between them.

    .. code-block:: python3

        meta = ModelMetadata()
        Model = model_base(metadata=meta)

    Relation targets given as names are looked up in this registry only; two bases made by
    :func:`.model_base` never see each other's models.
    """

    def __init__(self):
        #: A registry of table name -> model for this metadata.
        self.models = OrderedDict()

        #: The DB object bound to this metadata.
        self.bind = None  # type: md_db.DatabaseInterface

        #: The base class models of this metadata are built on.
        self.base = None

    def register_model(self, model: 'ModelMeta') -> 'ModelMeta':
        """
        Registers a new model.

        :param model: The model to register.
        """
        if model.__tablename__ in self.models:
            raise SchemaError("A model for table '{}' already exists".format(model.__tablename__))

        model.metadata = self
        self.models[model.__tablename__] = model
        return model

    def get_model(self, name: str) -> 'typing.Type[Model]':
        """
        Gets a model from the current metadata.

        :param name: The table name or the class name of the model.
        :return: A :class:`.Model` class, or None if no model was found.
        """
        try:
            return self.models[name]
        except KeyError:
            # we can load this from the class name instead
            for model in self.models.values():
                if model.__name__ == name:
                    return model
            else:
                return None

    def create_join_model(self, owner: 'ModelMeta', field: str, target: 'ModelMeta') \
            -> 'ModelMeta':
        """
        Creates the join model of a many to many field that has no ``through`` model.

        The model's table is ``<owner table>_<field>``, with a foreign key to each side named after
        the tables (``from_<table>`` and ``to_<table>`` if both sides are the same model).
        """
        left, right = owner.__tablename__, target.__tablename__
        if left == right:
            left, right = "from_{}".format(left), "to_{}".format(right)

        body = OrderedDict()
        body[left] = md_column.Column(md_relationship.ForeignKey(owner), nullable=False,
                                      related_name="+")
        body[right] = md_column.Column(md_relationship.ForeignKey(target), nullable=False,
                                       related_name="+")

        name = "{}{}".format(owner.__name__, field.title().replace("_", ""))
        table_name = "{}_{}".format(owner.__tablename__, field)
        logger.debug("Creating join model {} for {}.{}".format(table_name, owner.__name__, field))
        return ModelMeta(name, (self.base,), body, table_name=table_name)

    def setup_models(self):
        """
        Sets up the models for usage in the ORM. This can be called again after more models are
        defined.
        """
        self.resolve_relations()
        self.resolve_reverse_relations()

    def resolve_relations(self):
        """
        Resolves the targets of relation columns, and the join models of many to many columns.
        """
        for model in list(self.models.values()):
            for column in model.iter_columns():
                if isinstance(column.type, md_relationship.ForeignKey):
                    column.type.resolve(self)

        # join models are registered as they are created
        for model in list(self.models.values()):
            for column in model.iter_columns():
                if isinstance(column.type, md_relationship.ManyToMany):
                    column.type.resolve(self)
                    logger.debug("Resolved {}.{} through {}".format(
                        model.__name__, column.name, column.type.through.__name__))

    def resolve_reverse_relations(self):
        """
        Adds the reverse relations of relation columns to the models they reference.
        """
        for model in self.models.values():
            for column in model.iter_columns():
                if not isinstance(column.type, (md_relationship.ForeignKey,
                                                md_relationship.ManyToMany)):
                    continue

                name = column.related_name or "{}_set".format(model.__tablename__)
                if name.endswith("+"):
                    continue

                target = column.type.model
                existing = target._reverse_relations.get(name)
                if existing is not None:
                    if existing.source is column:
                        continue

                    raise SchemaError("Reverse relation '{}' on {} clashes with {!r}"
                                      .format(name, target.__name__, existing))

                if target.get_column(name) is not None:
                    raise SchemaError("Reverse relation '{}' on {} clashes with a field"
                                      .format(name, target.__name__))

                target._reverse_relations[name] = md_relationship.ReverseRelation(name, column)
                logger.debug("Added reverse relation {}.{}".format(target.__name__, name))


class ModelMeta(type):
    """
    The metaclass for a model object. This represents the "type" of a model class.
    """

    def __prepare__(*args, **kwargs):
        # this is required so that columns are ordered.
        return OrderedDict()

    def __new__(mcs, name: str, bases: tuple, class_body: dict,
                register: bool = True, *args, **kwargs):
        # usually a cloned class
        # so we just skip it directly
        if register is False:
            return type.__new__(mcs, name, bases, class_body)

        # pull the columns out of the class body
        # this allows us to keep them in our own ordered registry
        columns = OrderedDict()
        for col_name, value in class_body.copy().items():
            if isinstance(value, md_column.Column):
                columns[col_name] = value
                # nuke the column
                class_body.pop(col_name)

        if not any(col.primary_key for col in columns.values()):
            if "id" in columns:
                raise SchemaError("Model {} has a non-primary key 'id' field and no primary key"
                                  .format(name))

            # an auto-assigned surrogate key
            auto = md_column.Column(md_types.Integer, primary_key=True)
            columns = OrderedDict([("id", auto)] + list(columns.items()))

        class_body["_columns"] = columns
        class_body["_reverse_relations"] = OrderedDict()

        try:
            class_body["__tablename__"] = kwargs["table_name"]
        except KeyError:
            class_body["__tablename__"] = name.lower()

        return type.__new__(mcs, name, bases, class_body)

    def __init__(self, name: str, bases: tuple, class_body: dict, register: bool = True,
                 *args, **kwargs):
        """
        Creates a new Model class.

        :param register: Should this model be registered in the ModelMetadata?
        :param table_name: The name for this model's table.
        """
        super().__init__(name, bases, class_body)

        if register is False:
            return
        elif getattr(self, "metadata", None) is None:
            raise TypeError("Model {} has been created but has no metadata - did you subclass "
                            "Model directly instead of a clone?".format(name))

        # set names on columns unconditionally
        for col_name, column in self._columns.items():
            column.__set_name__(self, col_name)

        pks = [col for col in self._columns.values() if col.primary_key]
        if len(pks) != 1:
            raise SchemaError("Model {} must have exactly one primary key, not {}"
                              .format(name, len(pks)))

        #: The primary key column for this model.
        self._primary_key = pks[0]

        #: The manager for this model.
        self.objects = md_manager.ModelManager(self)

        logger.debug("Registered new model {}".format(name))
        self.metadata.register_model(self)

    def __getattr__(self, item):
        if item.startswith("_"):
            raise AttributeError("'{}' object has no attribute {}".format(self.__name__, item))

        # lets hope we have a descendant as Model
        col = self.get_column(item)
        if col is not None:
            return col

        raise AttributeError("'{}' object has no attribute {}".format(self.__name__, item))

    def __repr__(self):
        try:
            return "<Model object='{}' table='{}'>".format(self.__name__, self.__tablename__)
        except AttributeError:
            return super().__repr__()

    @property
    def primary_key(self) -> 'md_column.Column':
        """
        :return: The primary key :class:`.Column` for this model.
        """
        return self._primary_key

    def _internal_from_row(cls, values: dict, *, existed: bool = False):
        obb = object.__new__(cls)  # type: Model
        obb.__init__(**values)
        md_inspection._set_mangled(obb, "existed", existed)
        if existed:
            obb._old_pk = obb.primary_key
            obb._replace_placeholders()
        return obb


class Model(metaclass=ModelMeta, register=False):
    """
    The "base" class for all models. This class is not actually directly used; instead
    :func:`.model_base` should be called to get a fresh clone.
    """

    def __init__(self, **values):
        #: A mapping of field name -> current value for this row.
        self._values = OrderedDict()

        #: A mapping of reverse relation name -> proxy for this row.
        self._relations = {}

        #: If this row existed before.
        #: If this is True, this row was inserted or fetched from the DB previously.
        #: Otherwise, it is a fresh row.
        self.__existed = False

        #: If this row is marked as "deleted".
        #: This means that the row cannot be saved.
        self.__deleted = False

        #: The primary key this row had when it was last saved.
        self._old_pk = None

        self._init_row(**values)

    def _init_row(self, **values):
        """
        Initializes the values of this row. Fields that are not passed get their default.
        """
        cls = type(self)
        columns = {}
        for name, value in values.items():
            column = cls.get_column(name)
            if column is None:
                raise NoSuchFieldError("Unexpected field '{}' for {}".format(name, cls.__name__))

            columns[column.name] = value

        for column in cls.iter_columns():
            if column.name in columns:
                value = columns[column.name]
            else:
                value = column.get_default()

            self._values[column.name] = column.type.on_set(self, value)

        return self

    # Class properties
    @typeproperty
    @classmethod
    def columns(cls) -> 'typing.List[md_column.Column]':
        """
        :return: A list of :class:`.Column` this Model has.
        """
        return list(cls.iter_columns())

    @typeproperty
    @classmethod
    def __quoted_name__(cls) -> str:
        """
        :return: The quoted name of this model's table.
        """
        return '"{}"'.format(cls.__tablename__)

    # Class methods
    @classmethod
    def iter_columns(cls) -> 'typing.Generator[md_column.Column, None, None]':
        """
        :return: A generator that yields :class:`.Column` objects for this model, in definition
            order.
        """
        for col in cls._columns.values():
            yield col

    @classmethod
    def iter_reverse_relations(cls) \
            -> 'typing.Generator[md_relationship.ReverseRelation, None, None]':
        """
        :return: A generator that yields the :class:`.ReverseRelation` objects other models added
            to this one.
        """
        for rel in cls._reverse_relations.values():
            yield rel

    @classmethod
    def get_column(cls, column_name: str) -> 'typing.Union[md_column.Column, None]':
        """
        Gets a column by name.

        :param column_name: The field name, or the storage column name.
        :return: The :class:`.Column` associated with that name, or None if no column was found.
        """
        try:
            return cls._columns[column_name]
        except KeyError:
            for column in cls._columns.values():
                if column.db_column is not None and column.db_column == column_name:
                    return column

        return None

    @classmethod
    def get_reverse_relation(cls, name: str) \
            -> 'typing.Union[md_relationship.ReverseRelation, None]':
        """
        Gets a reverse relation by name.
        """
        return cls._reverse_relations.get(name)

    @classmethod
    def get_fields(cls) -> 'typing.Dict[str, md_column.Column]':
        """
        :return: An ordered mapping of field name -> :class:`.Column`.
        """
        return OrderedDict(cls._columns)

    # Row properties
    @property
    def primary_key(self) -> typing.Any:
        """
        :getter: The primary key value of this row.
        :setter: A new primary key value for this row.
        """
        return self._values[type(self).primary_key.name]

    @primary_key.setter
    def primary_key(self, value: typing.Any):
        setattr(self, type(self).primary_key.name, value)

    pk = primary_key

    def __getattr__(self, item: str):
        if item.startswith("_"):
            raise AttributeError("'{}' object has no attribute {}".format(type(self).__name__,
                                                                          item))

        cls = type(self)
        column = cls.get_column(item)
        if column is not None:
            return self._values[column.name]

        relation = cls.get_reverse_relation(item)
        if relation is not None:
            try:
                return self._relations[item]
            except KeyError:
                proxy = self._relations[item] = relation.make_proxy(self)
                return proxy

        raise AttributeError("{} was not an attribute of the row, and was not a field"
                             .format(item))

    def __setattr__(self, key, value):
        # ensure we're not doing stupid shit until we get _values
        try:
            object.__getattribute__(self, "_values")
        except AttributeError:
            return super().__setattr__(key, value)

        # if it's in our __dict__, it's probably not a column
        # so bypass the column check and set it directly
        if key in self.__dict__:
            return super().__setattr__(key, value)

        column = type(self).get_column(key)
        if column is None:
            return super().__setattr__(key, value)

        self._values[column.name] = column.type.on_set(self, value)

    def __repr__(self):
        gen = ("{}={!r}".format(col.name, self._values[col.name])
               for col in type(self).iter_columns() if col.is_stored)
        return "<{} {}>".format(type(self).__name__, " ".join(gen))

    def __eq__(self, other):
        if not isinstance(other, Model):
            return NotImplemented

        if type(other) is not type(self) or self.primary_key is None:
            return self is other

        return self.primary_key == other.primary_key

    def __hash__(self):
        if self.primary_key is None:
            return object.__hash__(self)

        return hash((type(self), self.primary_key))

    # relation state
    def _replace_placeholders(self) \
            -> 'typing.List[typing.Tuple[md_related.RelatedPlaceholder, md_related.RelatedManager]]':
        """
        Replaces every placeholder on this row with a manager scoped to its primary key.

        :return: A list of (placeholder, manager) pairs, so that pending rows can be written.
        """
        replaced = []
        pk = self.primary_key
        for column in type(self).iter_columns():
            value = self._values[column.name]
            if isinstance(value, md_related.RelatedPlaceholder):
                manager = value.get_manager(pk)
                self._values[column.name] = manager
                replaced.append((value, manager))

        for name, value in list(self._relations.items()):
            if isinstance(value, md_related.RelatedPlaceholder):
                manager = value.get_manager(pk)
                self._relations[name] = manager
                replaced.append((value, manager))

        return replaced

    def _rescope_relations(self):
        """
        Scopes the managers of this row to its current primary key.
        """
        pk = self.primary_key
        for column in type(self).iter_columns():
            if isinstance(column.type, md_relationship.ManyToMany):
                self._values[column.name] = column.type.get_manager(type(self), pk)

        # built again on next access
        self._relations.clear()

    # row methods
    def validate(self):
        """
        Validates every field of this row.

        :raises ValidationError: For the first field that rejects its value.
        """
        for column in type(self).iter_columns():
            reason = column.validate(self._values[column.name])
            if reason is not None:
                raise ValidationError(column.name, reason)

    async def save(self):
        """
        Saves this row. See :meth:`.ModelManager.save`.
        """
        return await type(self).objects.save(self)

    async def delete(self):
        """
        Deletes this row, using the primary key it had when it was last saved. The row can't be
        saved again afterwards.
        """
        if md_inspection.is_new(self):
            raise UsageError("Cannot delete a row that was never saved")

        await type(self).objects.filter(pk=self._old_pk).delete()
        md_inspection._set_mangled(self, "deleted", True)

    def get_display(self, field: str) -> typing.Any:
        """
        Gets the display label of the current value of a field with choices.

        :param field: The name of the field.
        """
        column = type(self).get_column(field)
        if column is None:
            raise NoSuchFieldError("{} has no field named '{}'".format(type(self).__name__, field))

        return column.get_display(self._values[column.name])

    def to_dict(self) -> dict:
        """
        Converts this row to a dict of stored field name -> value. Foreign keys are given as the
        referenced primary key.
        """
        d = OrderedDict()
        for column in type(self).iter_columns():
            if not column.is_stored:
                continue

            value = self._values[column.name]
            if isinstance(value, md_related.SingleRelationship):
                value = value.pk

            d[column.name] = value

        return d


def model_base(name: str = "Model", metadata: 'ModelMetadata' = None):
    """
    Gets a new base object to use for models.
    This object is the parent of all models; it provides some key configuration to the relation
    resolver and the DB object itself.

    To use this object, you call this function to create the new object, and subclass it in your
    model classes:

    .. code-block:: python3

        Model = model_base()

        class Author(Model):
            id = Column(Integer, primary_key=True)
            name = Column(String(50))

    Binding the base object to the database object is essential for querying:

    .. code-block:: python3

        db.bind_models(Model)
        author = await Author.objects.get(pk=1)

    :param name: The name of the new class to produce. By default, it is ``Model``.
    :param metadata: The :class:`.ModelMetadata` to use as metadata.
    :return: A new Model class that can be used for models.
    """
    if metadata is None:
        metadata = ModelMetadata()

    # directly calling the metaclass, so the clone is not registered
    clone = ModelMeta.__new__(ModelMeta, name, (Model,), {"metadata": metadata}, register=False)
    if metadata.base is None:
        metadata.base = clone
    return clone
