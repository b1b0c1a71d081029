"""
The model manager: the root :class:`.QuerySet` of a model, which also saves rows.
"""
import logging
import typing

from asyncstorm.exc import UsageError
from asyncstorm.orm import inspection as md_inspection, query as md_query, related as md_related
from asyncstorm.orm.schema import relationship as md_relationship
from asyncstorm.orm.schema.decorators import enforce_bound

logger = logging.getLogger(__name__)


class ModelManager(md_query.QuerySet):
    """
    The manager of a model, available as ``Model.objects``. It lists every row of the model, and
    writes rows to the database.

    .. code-block:: python3

        author = Author(name="A. Doe")
        await Author.objects.save(author)  # or author.save()
        authors = await Author.objects.filter(name__contains="Doe").all()

    A new row is inserted. If it has no primary key, one is generated as one more than the
    largest key in the table.

    .. warning::
        The key is read and the row inserted in two separate units, so two tasks inserting into the
        same table at the same time can be given the same key; the second insert then fails with
        an :class:`.IntegrityError`.

    A row that was inserted or loaded is updated, using the primary key it had when it was last
    saved; changing the primary key of a saved row changes the key of the stored row, and of its
    join rows.
    """

    def __repr__(self):
        return "<ModelManager model={}>".format(self.model.__name__)

    def _encode_row(self, row) -> typing.Tuple[typing.List[str], typing.List[str]]:
        names = []
        literals = []
        for column in self.model.iter_columns():
            if not column.is_stored:
                # many to many fields live in the join model
                continue

            names.append(column.quoted_name)
            literals.append(column.encode(row._values[column.name]))

        return names, literals

    def _key_change_statements(self, row) -> typing.List[str]:
        """
        Gets the statements that move the join rows of a row from its old key to its new key.
        """
        statements = []
        old_pk = md_inspection.get_old_pk(row)
        relations = [column.type for column in self.model.iter_columns()
                     if isinstance(column.type, md_relationship.ManyToMany)]
        relations.extend(rel for rel in self.model.iter_reverse_relations()
                         if rel.is_many_to_many)

        for relation in relations:
            statements.append("UPDATE {} SET {} = {} WHERE {} = {}".format(
                relation.through.__quoted_name__,
                relation.foreign_key.quoted_name, relation.foreign_key.encode(row.primary_key),
                relation.foreign_key.quoted_name, relation.foreign_key.encode(old_pk),
            ))

        return statements

    @enforce_bound
    async def save(self, row):
        """
        Saves a row, inserting it if it is new and updating it otherwise.

        :param row: The model instance to save.
        :raises ValidationError: If a field rejects its value. Nothing is written.
        """
        if not isinstance(row, self.model):
            raise UsageError("{!r} is not a {} row".format(row, self.model.__name__))

        if md_inspection.is_deleted(row):
            raise UsageError("Row {!r} has been deleted".format(row))

        row.validate()

        if md_inspection.is_new(row):
            # pending relation rows are linked after the insert, so check them first
            pending = list(row._values.values()) + list(row._relations.values())
            for value in pending:
                if isinstance(value, md_related.RelatedPlaceholder):
                    value.check_pending()

            await self._insert(row)
        else:
            await self._update(row)

        return row

    async def _insert(self, row):
        table = self.model.__quoted_name__
        pk_column = self.model.primary_key

        if row.primary_key is None:
            # not safe against concurrent inserts, see the class docs
            result = await self.bind.execute(
                'SELECT COALESCE(MAX({}), 0) + 1 AS "next_key" FROM {}'.format(
                    pk_column.quoted_name, table)
            )
            row.primary_key = await pk_column.decode(result[0]["next_key"])
            logger.debug("Assigned key {!r} to new {} row".format(row.primary_key,
                                                                   self.model.__name__))

        names, literals = self._encode_row(row)
        await self.bind.execute("INSERT INTO {} ({}) VALUES ({})".format(
            table, ", ".join(names), ", ".join(literals)
        ))

        md_inspection._set_mangled(row, "existed", True)
        row._old_pk = row.primary_key

        # placeholders become managers, and write their pending rows one relation at a time
        for placeholder, manager in row._replace_placeholders():
            logger.debug("Flushing {!r} through {!r}".format(placeholder, manager))
            await placeholder.save(manager)

    async def _update(self, row):
        if row.primary_key is None:
            raise UsageError("Cannot update a {} row without a primary key"
                             .format(self.model.__name__))

        old_pk = md_inspection.get_old_pk(row)
        pk_column = self.model.primary_key
        statements = []
        if old_pk != row.primary_key:
            statements.extend(self._key_change_statements(row))

        names, literals = self._encode_row(row)
        statements.append("UPDATE {} SET {} WHERE {} = {}".format(
            self.model.__quoted_name__,
            ", ".join("{}={}".format(name, literal) for name, literal in zip(names, literals)),
            pk_column.quoted_name, pk_column.encode(old_pk),
        ))
        await self.bind.execute(*statements)

        row._old_pk = row.primary_key
        if old_pk != row.primary_key:
            logger.debug("Moved {} row from key {!r} to {!r}".format(self.model.__name__, old_pk,
                                                                      row.primary_key))
            row._rescope_relations()
