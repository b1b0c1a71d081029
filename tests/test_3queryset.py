"""
Tests for running querysets against a database.
"""
import pytest
import pytest_asyncio

from asyncstorm import Column, DatabaseInterface, Integer, Q, String, model_base
from asyncstorm.exc import DoesNotExist, MultipleObjectsReturned
from asyncstorm.orm.inspection import get_old_pk, is_new

# mark all test_ functions as coroutines
pytestmark = pytest.mark.asyncio

Model = model_base()


class Person(Model):
    name = Column(String(50))
    age = Column(Integer)


@pytest_asyncio.fixture
async def people(db: DatabaseInterface):
    db.bind_models(Model)
    await db.execute(
        'CREATE TABLE "person" ("id" INTEGER PRIMARY KEY, "name" VARCHAR(50), "age" INTEGER)',
        'INSERT INTO "person" VALUES (1, \'A. Doe\', 31)',
        'INSERT INTO "person" VALUES (2, \'B. Roe\', 25)',
        'INSERT INTO "person" VALUES (3, \'c. doe\', 47)',
        'INSERT INTO "person" VALUES (4, \'D. Poe\', NULL)',
    )
    return db


def names(rows) -> list:
    return [row.name for row in rows]


async def test_all(people):
    rows = await Person.objects.order_by("id").all()
    assert names(rows) == ["A. Doe", "B. Roe", "c. doe", "D. Poe"]
    assert rows[0].age == 31
    assert rows[3].age is None
    assert all(not is_new(row) for row in rows)
    assert get_old_pk(rows[1]) == 2


async def test_results_are_cached(people, executed):
    qs = Person.objects.filter(age__gt=30)
    first = await qs.all()
    second = await qs.all()

    assert len(executed) == 1
    assert first == second
    # a copy is returned each time
    assert first is not second


async def test_new_querysets_query_again(people, executed):
    await Person.objects.filter(age__gt=30).all()
    await Person.objects.filter(age__gt=30).all()
    assert len(executed) == 2


async def test_chained_filters(people):
    chained = await Person.objects.filter(age__gt=26).filter(name__contains="Doe").all()
    combined = await Person.objects.filter(Q(age__gt=26) & Q(name__contains="Doe")).all()
    assert names(chained) == names(combined) == ["A. Doe"]


async def test_exclude_partitions(people):
    matched = await Person.objects.filter(age__lt=40).all()
    excluded = await Person.objects.exclude(age__lt=40).all()
    assert set(names(matched)) == {"A. Doe", "B. Roe"}
    # NULL ages are in neither side
    assert set(names(excluded)) == {"c. doe"}


async def test_contains_is_case_sensitive(people):
    rows = await Person.objects.filter(name__contains="doe").all()
    assert names(rows) == ["c. doe"]

    rows = await Person.objects.filter(name__icontains="doe").order_by("id").all()
    assert names(rows) == ["A. Doe", "c. doe"]


async def test_exact_is_case_sensitive(people):
    assert await Person.objects.filter(name="a. doe").all() == []

    rows = await Person.objects.filter(name__iexact="a. doe").all()
    assert names(rows) == ["A. Doe"]


async def test_contains_escapes_quotes(people):
    await people.execute('INSERT INTO "person" VALUES (5, \'E. O\'\'Neil\', 60)')
    rows = await Person.objects.filter(name__contains="O'Neil").all()
    assert names(rows) == ["E. O'Neil"]


async def test_in(people):
    rows = await Person.objects.filter(id__in=[1, 3]).order_by("id").all()
    assert names(rows) == ["A. Doe", "c. doe"]


async def test_or(people):
    rows = await Person.objects.filter(Q(age__lte=25) | Q(age__gte=47)).order_by("-age").all()
    assert names(rows) == ["c. doe", "B. Roe"]


async def test_order_by(people):
    rows = await Person.objects.exclude(id=4).order_by("-age").all()
    assert names(rows) == ["c. doe", "A. Doe", "B. Roe"]


async def test_order_by_breaks_ties(people):
    await people.execute('INSERT INTO "person" VALUES (5, \'A. Able\', 31)')
    qs = Person.objects.exclude(id=4)

    rows = await qs.order_by("-age", "name").all()
    assert names(rows) == ["c. doe", "A. Able", "A. Doe", "B. Roe"]

    rows = await qs.order_by("-age", "-name").all()
    assert names(rows) == ["c. doe", "A. Doe", "A. Able", "B. Roe"]


async def test_get(people):
    person = await Person.objects.get(pk=2)
    assert person.name == "B. Roe"

    person = await Person.objects.filter(name__icontains="doe").get(age=47)
    assert person.pk == 3


async def test_get_cardinality(people):
    with pytest.raises(DoesNotExist):
        await Person.objects.get(name="Nobody")

    with pytest.raises(MultipleObjectsReturned):
        await Person.objects.get(name__icontains="doe")


async def test_first(people):
    person = await Person.objects.order_by("-age").first()
    assert person.name == "c. doe"

    assert await Person.objects.filter(age__gt=100).first() is None


async def test_async_iteration(people):
    rows = [row async for row in Person.objects.filter(age__lt=40).order_by("age")]
    assert names(rows) == ["B. Roe", "A. Doe"]


async def test_delete(people):
    qs = Person.objects.filter(age__gt=30)
    await qs.delete()
    assert await qs.all() == []

    rows = await Person.objects.order_by("id").all()
    assert names(rows) == ["B. Roe", "D. Poe"]


async def test_delete_row(people):
    person = await Person.objects.get(pk=1)
    await person.delete()

    with pytest.raises(DoesNotExist):
        await Person.objects.get(pk=1)
