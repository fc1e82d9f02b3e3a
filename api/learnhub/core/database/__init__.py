"""Storage backends: Cassandra for deployments, in-memory for tests."""

from learnhub.core.database.async_cassandra import (
    AsyncCassandraConnection,
    create_schema,
    init_async_cassandra,
)
from learnhub.core.database.memory import MemoryDatabase


__all__ = [
    "AsyncCassandraConnection",
    "MemoryDatabase",
    "create_schema",
    "init_async_cassandra",
]
