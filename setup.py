import sys

from setuptools import setup

if sys.version_info[0:2] < (3, 8):
    raise RuntimeError("This package requires Python 3.8+.")

setup(
    name="asyncstorm",
    version="0.1.0",
    packages=[
        "asyncstorm",
        "asyncstorm.orm",
        "asyncstorm.orm.schema",
        # namespace packages yay
        "asyncstorm.backends",
        # sqlite3 backend
        "asyncstorm.backends.sqlite3"
    ],
    license="MIT",
    description="A lazy, Django-style asyncio ORM for SQLite",
    install_requires=[
        "cached_property>=1.5.0",
        "aiosqlite>=0.17.0"
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio>=0.17.0",
            "pytest-cov"
        ]
    },
    python_requires=">=3.8",
)
