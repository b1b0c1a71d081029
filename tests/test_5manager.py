"""
Tests for saving rows.
"""
import pytest
import pytest_asyncio

from asyncstorm import Boolean, Column, DatabaseInterface, ForeignKey, Integer, ManyToMany, \
    String, Text, model_base
from asyncstorm.exc import IntegrityError, UsageError, ValidationError
from asyncstorm.orm.inspection import get_old_pk, is_deleted, is_new
from asyncstorm.orm.related import RelatedManager

# mark all test_ functions as coroutines
pytestmark = pytest.mark.asyncio

Model = model_base()


class Author(Model):
    id = Column(Integer, primary_key=True)
    name = Column(String(50), nullable=False)


class Book(Model):
    title = Column(String(255))
    author = Column(ForeignKey(Author), related_name="books")
    tags = Column(ManyToMany("Tag"))
    in_print = Column(Boolean, default=True)


class Tag(Model):
    label = Column(String(20))


class Reading(Model):
    value = Column(Integer, nullable=False)
    note = Column(Text)
    ok = Column(Boolean)


class Review(Model):
    book = Column(ForeignKey(Book), nullable=False, related_name="reviews")
    text = Column(Text)


SCHEMA = [
    'CREATE TABLE "author" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(50) NOT NULL)',
    'CREATE TABLE "book" ("id" INTEGER PRIMARY KEY, "title" VARCHAR(255), "author_id" INTEGER, '
    '"in_print" BOOLEAN)',
    'CREATE TABLE "tag" ("id" INTEGER PRIMARY KEY, "label" VARCHAR(20))',
    'CREATE TABLE "book_tags" ("id" INTEGER PRIMARY KEY, "book_id" INTEGER NOT NULL, '
    '"tag_id" INTEGER NOT NULL)',
    'CREATE TABLE "reading" ("id" INTEGER PRIMARY KEY, "value" INTEGER NOT NULL, "note" TEXT, '
    '"ok" BOOLEAN)',
    'CREATE TABLE "review" ("id" INTEGER PRIMARY KEY, "book_id" INTEGER NOT NULL, "text" TEXT)',
]


@pytest_asyncio.fixture
async def schema(db: DatabaseInterface):
    db.bind_models(Model)
    await db.execute(*SCHEMA)
    return db


async def count(db: DatabaseInterface, table: str) -> int:
    rows = await db.execute('SELECT COUNT(*) AS "count" FROM "{}"'.format(table))
    return rows[0]["count"]


async def test_insert_assigns_key(schema, executed):
    author = Author(name="A. Doe")
    assert is_new(author)
    await author.save()

    assert author.id == 1
    assert not is_new(author)
    assert get_old_pk(author) == 1
    assert executed[0] == ('SELECT COALESCE(MAX("id"), 0) + 1 AS "next_key" FROM "author"',)
    assert executed[1] == ('INSERT INTO "author" ("id", "name") VALUES (1, \'A. Doe\')',)


async def test_insert_key_follows_max(schema):
    await schema.execute('INSERT INTO "author" VALUES (41, \'Old\')')
    author = await Author(name="New").save()
    assert author.id == 42


async def test_insert_explicit_key(schema, executed):
    author = await Author(id=7, name="A. Doe").save()
    assert author.id == 7
    # no key is generated
    assert len(executed) == 1


async def test_insert_duplicate_key(schema):
    await Author(id=1, name="A").save()
    with pytest.raises(IntegrityError):
        await Author(id=1, name="B").save()


async def test_update(schema, executed):
    author = await Author(name="A. Doe").save()
    calls = len(executed)

    author.name = "B. Roe"
    await author.save()

    assert executed[calls:] == [
        ('UPDATE "author" SET "id"=1, "name"=\'B. Roe\' WHERE "id" = 1',),
    ]
    assert await count(schema, "author") == 1
    assert (await Author.objects.get(pk=1)).name == "B. Roe"


async def test_update_loaded_row(schema):
    await schema.execute('INSERT INTO "author" VALUES (3, \'A. Doe\')')
    author = await Author.objects.get(pk=3)
    author.name = "C. Moe"
    await author.save()

    rows = await schema.execute('SELECT "name" FROM "author" WHERE "id" = 3')
    assert rows[0]["name"] == "C. Moe"


async def test_change_primary_key(schema):
    author = await Author(name="A. Doe").save()
    author.id = 5
    await author.save()

    assert get_old_pk(author) == 5
    rows = await schema.execute('SELECT "id" FROM "author"')
    assert [row["id"] for row in rows] == [5]


async def test_change_primary_key_moves_join_rows(schema, executed):
    tags = [await Tag(label=label).save() for label in ("py", "db")]
    book = await Book(title="X", tags=tags).save()
    calls = len(executed)

    book.id = 10
    await book.save()

    statements = executed[calls]
    # the key change and the update run as one unit
    assert len(executed) == calls + 1
    assert statements[0] == 'UPDATE "book_tags" SET "book_id" = 10 WHERE "book_id" = 1'
    assert statements[1].startswith('UPDATE "book" SET "id"=10')

    rows = await schema.execute('SELECT "book_id" FROM "book_tags"')
    assert [row["book_id"] for row in rows] == [10, 10]
    assert isinstance(book.tags, RelatedManager)
    assert book.tags.owner_pk == 10
    assert {tag.label for tag in await book.tags.all()} == {"py", "db"}


async def test_update_without_key(schema):
    author = await Author(name="A. Doe").save()
    author.id = None
    with pytest.raises(UsageError):
        await author.save()


async def test_validation_writes_nothing(schema, executed):
    with pytest.raises(ValidationError) as e:
        await Author().save()
    assert e.value.field == "name"

    with pytest.raises(ValidationError) as e:
        await Book(title="x" * 256).save()
    assert e.value.field == "title"

    assert executed == []


async def test_required_foreign_key_to_unsaved_row(schema, executed):
    review = Review(book=Book(title="X"), text="Great")
    with pytest.raises(ValidationError) as e:
        await review.save()

    assert e.value.field == "book"
    assert executed == []
    assert is_new(review)


async def test_required_foreign_key_to_saved_row(schema):
    book = await Book(title="X").save()
    review = await Review(book=book, text="Great").save()

    rows = await schema.execute('SELECT "book_id" FROM "review"')
    assert rows[0]["book_id"] == book.id
    assert [r.text for r in await book.reviews.all()] == ["Great"]


async def test_unsaved_pending_rows_write_nothing(schema, executed):
    tag = Tag(label="new")
    book = Book(title="X", tags=[tag])
    with pytest.raises(UsageError):
        await book.save()

    assert executed == []
    assert is_new(book)
    # the pending rows are kept, so the save can be retried
    assert await book.tags.all() == [tag]

    await tag.save()
    await book.save()
    assert await count(schema, "book_tags") == 1
    assert [t.label for t in await book.tags.all()] == ["new"]


async def test_save_wrong_model(schema):
    with pytest.raises(UsageError):
        await Author.objects.save(Tag(label="py"))


async def test_delete(schema):
    author = await Author(name="A. Doe").save()
    await author.delete()

    assert is_deleted(author)
    assert await count(schema, "author") == 0
    with pytest.raises(UsageError):
        await author.save()


async def test_delete_new_row(schema):
    with pytest.raises(UsageError):
        await Author(name="A. Doe").delete()


@pytest.mark.parametrize("value,note,ok", [
    (-7, "it's", True),
    (0, "", False),
    (12, "ünïcödé", True),
    (3, None, None),
])
async def test_values_survive_storage(schema, value, note, ok):
    reading = await Reading(value=value, note=note, ok=ok).save()
    fetched = await Reading.objects.get(pk=reading.pk)
    assert fetched.value == value
    assert fetched.note == note
    assert fetched.ok is ok


async def test_end_to_end(schema, executed):
    author = await Author(name="A. Doe").save()
    book = await Book(title="X", author=author).save()
    other = await Author(name="B. Roe").save()
    await Book(title="Y", author=other).save()
    calls = len(executed)

    books = await Book.objects.filter(author__name="A. Doe").all()
    assert books == [book]
    assert books[0].title == "X"
    assert books[0].in_print is True
    assert 'JOIN "author" ON ("book"."author_id" = "author"."id")' in executed[calls][0]

    fetched = await books[0].author
    assert fetched == author
    assert [b.title for b in await fetched.books.all()] == ["X"]


async def test_placeholders_are_flushed(schema, executed):
    tags = [await Tag(label=label).save() for label in ("a", "b", "c")]
    book = Book(title="X", tags=tags)
    calls = len(executed)

    await book.save()
    # the key, the row, a clear, then one insert per tag
    assert len(executed) == calls + 6
    assert isinstance(book.tags, RelatedManager)
    assert await count(schema, "book_tags") == 3

    fetched = await Book.objects.get(pk=book.pk)
    assert {tag.label for tag in await fetched.tags.all()} == {"a", "b", "c"}


async def test_empty_placeholder_is_flushed(schema):
    book = await Book(title="X").save()
    assert isinstance(book.tags, RelatedManager)
    assert await book.tags.all() == []


async def test_reverse_placeholder_on_insert(schema):
    author = Author(name="A. Doe")
    # accessed before the row has a key
    assert await author.books.all() == []
    await author.save()

    await Book(title="X", author=author).save()
    assert [b.title for b in await author.books.all()] == ["X"]


async def test_foreign_key_to_unsaved_row(schema):
    author = Author(name="A. Doe")
    book = Book(title="X", author=author)
    await author.save()
    # the key given to the author on insert is used
    await book.save()

    rows = await schema.execute('SELECT "author_id" FROM "book"')
    assert rows[0]["author_id"] == author.id
