"""
Tests for related rows: foreign keys, reverse relations and many to many relations.
"""
import pytest
import pytest_asyncio

from asyncstorm import Column, DatabaseInterface, ForeignKey, ManyToMany, String, model_base
from asyncstorm.exc import UsageError
from asyncstorm.orm.related import RelatedManager, RelatedPlaceholder, SingleRelationship

# mark all test_ functions as coroutines
pytestmark = pytest.mark.asyncio

Model = model_base()


class Author(Model):
    name = Column(String(50))


class Book(Model):
    title = Column(String(255))
    author = Column(ForeignKey(Author), related_name="books")
    tags = Column(ManyToMany("Tag"), related_name="books")


class Tag(Model):
    label = Column(String(20))


SCHEMA = [
    'CREATE TABLE "author" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(50))',
    'CREATE TABLE "book" ("id" INTEGER PRIMARY KEY, "title" VARCHAR(255), "author_id" INTEGER)',
    'CREATE TABLE "tag" ("id" INTEGER PRIMARY KEY, "label" VARCHAR(20))',
    'CREATE TABLE "book_tags" ("id" INTEGER PRIMARY KEY, "book_id" INTEGER NOT NULL, '
    '"tag_id" INTEGER NOT NULL)',
]

DATA = [
    'INSERT INTO "author" VALUES (1, \'A. Doe\'), (2, \'B. Roe\')',
    'INSERT INTO "book" VALUES (1, \'X\', 1), (2, \'Y\', 1), (3, \'Z\', 2), (4, \'W\', NULL)',
    'INSERT INTO "tag" VALUES (1, \'py\'), (2, \'db\')',
    'INSERT INTO "book_tags" VALUES (1, 1, 1), (2, 1, 2), (3, 2, 1)',
]


@pytest_asyncio.fixture
async def library(db: DatabaseInterface):
    db.bind_models(Model)
    await db.execute(*SCHEMA, *DATA)
    return db


async def join_rows(db: DatabaseInterface, column: str, key: int) -> list:
    other = "tag_id" if column == "book_id" else "book_id"
    rows = await db.execute('SELECT "{}" FROM "book_tags" WHERE "{}" = {} ORDER BY "{}"'
                            .format(other, column, key, other))
    return [row[other] for row in rows]


def titles(rows) -> set:
    return {row.title for row in rows}


# foreign keys
async def test_foreign_key_is_lazy(library, executed):
    book = await Book.objects.get(pk=1)
    assert isinstance(book.author, SingleRelationship)
    assert book.author.pk == 1
    assert not book.author.loaded
    assert len(executed) == 1

    author = await book.author
    assert author.name == "A. Doe"
    assert book.author.loaded
    assert len(executed) == 2

    # fetched once
    assert await book.author.get() is author
    assert len(executed) == 2


async def test_null_foreign_key(library):
    book = await Book.objects.get(title="W")
    assert book.author is None


async def test_foreign_key_set(library, executed):
    book = await Book.objects.get(pk=3)
    other = await Author.objects.get(pk=1)
    calls = len(executed)

    book.author.set(other)
    assert len(executed) == calls
    assert book.author.pk == 1

    await book.save()
    rows = await library.execute('SELECT "author_id" FROM "book" WHERE "id" = 3')
    assert rows[0]["author_id"] == 1


async def test_foreign_key_assign_row(library):
    book = await Book.objects.get(pk=4)
    author = await Author.objects.get(pk=2)
    book.author = author
    assert book.author.loaded
    assert book.author.pk == 2
    assert await book.author is author


# reverse foreign keys
async def test_reverse_foreign_key(library):
    author = await Author.objects.get(pk=1)
    assert isinstance(author.books, RelatedManager)
    assert author.books is author.books
    assert titles(await author.books.all()) == {"X", "Y"}

    rows = await author.books.filter(title="Y").all()
    assert titles(rows) == {"Y"}


async def test_reverse_foreign_key_is_read_only(library):
    author = await Author.objects.get(pk=1)
    with pytest.raises(UsageError):
        author.books.set([])

    with pytest.raises(UsageError):
        author.books.clear()


# many to many
async def test_many_to_many(library):
    book = await Book.objects.get(pk=1)
    assert isinstance(book.tags, RelatedManager)
    tags = await book.tags.all()
    assert {tag.label for tag in tags} == {"py", "db"}

    tags = await book.tags.filter(label="py").all()
    assert [tag.label for tag in tags] == ["py"]


async def test_reverse_many_to_many(library):
    tag = await Tag.objects.get(label="py")
    assert titles(await tag.books.all()) == {"X", "Y"}

    tag = await Tag.objects.get(label="db")
    assert titles(await tag.books.all()) == {"X"}


async def test_many_to_many_set(library, executed):
    book = await Book.objects.get(pk=2)
    tags = await Tag.objects.order_by("id").all()
    calls = len(executed)

    await book.tags.set(tags)
    new_calls = executed[calls:]
    # a clear, then one insert per row
    assert len(new_calls) == 3
    assert new_calls[0][0].startswith('DELETE FROM "book_tags" WHERE "book_id" = 2')
    assert all(call[0].startswith('INSERT INTO "book_tags"') for call in new_calls[1:])

    # the rows set are cached
    assert await book.tags.all() == tags
    assert len(executed) == calls + 3

    assert await join_rows(library, "book_id", 2) == [1, 2]


async def test_many_to_many_clear(library):
    book = await Book.objects.get(pk=1)
    await book.tags.clear()
    assert await join_rows(library, "book_id", 1) == []
    assert await book.tags.all() == []

    # the other book's join rows are untouched
    assert await join_rows(library, "book_id", 2) == [1]


async def test_many_to_many_set_unsaved(library, executed):
    book = await Book.objects.get(pk=1)
    calls = len(executed)
    with pytest.raises(UsageError):
        book.tags.set([Tag(label="new")])

    assert len(executed) == calls


async def test_reverse_many_to_many_set(library):
    tag = await Tag.objects.get(label="db")
    book = await Book.objects.get(pk=3)
    await tag.books.set([book])

    assert await join_rows(library, "tag_id", 2) == [3]
    assert titles(await tag.books.all()) == {"Z"}
    # the forward side sees the change
    assert [t.label for t in await book.tags.all()] == ["db"]


async def test_assign_list_to_saved_row(library):
    book = await Book.objects.get(pk=1)
    with pytest.raises(UsageError):
        book.tags = []


# placeholders
async def test_placeholders(library, executed):
    tag = await Tag.objects.get(label="py")
    calls = len(executed)

    book = Book(title="New")
    assert isinstance(book.tags, RelatedPlaceholder)
    await book.tags.set([tag])
    assert await book.tags.all() == [tag]

    author = Author(name="C. Moe")
    assert isinstance(author.books, RelatedPlaceholder)
    assert await author.books.all() == []
    with pytest.raises(UsageError):
        await author.books.set([book])

    assert len(executed) == calls


async def test_placeholder_manager(library):
    placeholder = Book(title="New").tags
    manager = placeholder.get_manager(2)
    assert isinstance(manager, RelatedManager)
    tags = await manager.all()
    assert [tag.label for tag in tags] == ["py"]
