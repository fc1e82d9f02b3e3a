"""Cassandra connection and schema bootstrap.

Sessions come from cassandra-asyncio-driver, whose ``Cluster`` hands out
sessions with ``aexecute()`` so repositories can await their queries.
The ledger relies on lightweight transactions, so the schema is created
with the keyspace's own replication settings and every table group of the
service is created at startup.
"""

from typing import TYPE_CHECKING, Any

import structlog
from cassandra.auth import PlainTextAuthProvider
from cassandra.policies import DCAwareRoundRobinPolicy, TokenAwarePolicy

from learnhub.courses.models import COURSES_TABLES_CQL
from learnhub.enrollments.models import ENROLLMENTS_TABLES_CQL
from learnhub.notifications.models import NOTIFICATIONS_TABLES_CQL
from learnhub.progress.models import PROGRESS_TABLES_CQL
from learnhub.quizzes.models import QUIZZES_TABLES_CQL
from learnhub.short_questions.models import SHORT_QUESTIONS_TABLES_CQL


if TYPE_CHECKING:
    from learnhub.config.settings import Settings


logger = structlog.get_logger(__name__)

TABLE_GROUPS: dict[str, list[str]] = {
    "courses": COURSES_TABLES_CQL,
    "enrollments": ENROLLMENTS_TABLES_CQL,
    "progress": PROGRESS_TABLES_CQL,
    "quizzes": QUIZZES_TABLES_CQL,
    "short_questions": SHORT_QUESTIONS_TABLES_CQL,
    "notifications": NOTIFICATIONS_TABLES_CQL,
}


def keyspace_cql(settings: "Settings") -> str:
    """CREATE KEYSPACE statement for the configured environment.

    Production spreads replicas over the configured datacenter; elsewhere a
    single replica is enough.
    """
    if settings.is_production:
        replication = (
            "'class': 'NetworkTopologyStrategy', "
            f"'{settings.cassandra_datacenter}': {settings.cassandra_replication_factor}"
        )
    else:
        replication = "'class': 'SimpleStrategy', 'replication_factor': 1"
    return (
        f"CREATE KEYSPACE IF NOT EXISTS {settings.cassandra_keyspace} "
        f"WITH replication = {{{replication}}} AND durable_writes = true"
    )


class AsyncCassandraConnection:
    """Owns the cluster and the session for the lifetime of the app."""

    def __init__(self, settings: "Settings"):
        self.settings = settings
        self._cluster: Any = None
        self.session: Any = None

    def connect(self) -> Any:
        """Open the session, reusing it if already connected.

        Raises:
            ConnectionError: If no contact point answers
        """
        if self.session is not None:
            return self.session

        # Importing the cluster module selects the asyncio reactor
        from cassandra_asyncio.cluster import Cluster

        settings = self.settings
        auth_provider = None
        if settings.cassandra_username and settings.cassandra_password:
            auth_provider = PlainTextAuthProvider(
                username=settings.cassandra_username,
                password=settings.cassandra_password,
            )

        self._cluster = Cluster(
            contact_points=settings.cassandra_hosts,
            port=settings.cassandra_port,
            auth_provider=auth_provider,
            protocol_version=settings.cassandra_protocol_version,
            load_balancing_policy=TokenAwarePolicy(DCAwareRoundRobinPolicy()),
            connect_timeout=settings.cassandra_connect_timeout,
        )
        try:
            self.session = self._cluster.connect()
        except Exception as e:
            logger.error("cassandra_connection_failed", error=str(e))
            raise ConnectionError(f"Failed to connect to Cassandra: {e}") from e

        self.session.default_timeout = settings.cassandra_request_timeout
        logger.info(
            "cassandra_connected",
            hosts=settings.cassandra_hosts,
            port=settings.cassandra_port,
            protocol_version=settings.cassandra_protocol_version,
        )
        return self.session

    def close(self) -> None:
        if self.session is not None:
            self.session.shutdown()
            self.session = None
        if self._cluster is not None:
            self._cluster.shutdown()
            self._cluster = None
        logger.info("cassandra_closed")

    @property
    def is_connected(self) -> bool:
        return self.session is not None and not self.session.is_shutdown


async def create_schema(session: Any, settings: "Settings") -> None:
    """Create the keyspace and every table group (idempotent)."""
    keyspace = settings.cassandra_keyspace
    await session.aexecute(keyspace_cql(settings))
    session.set_keyspace(keyspace)
    for group, statements in TABLE_GROUPS.items():
        for cql in statements:
            await session.aexecute(cql.format(keyspace=keyspace))
        logger.info("cassandra_tables_ready", keyspace=keyspace, group=group)


async def init_async_cassandra(settings: "Settings") -> AsyncCassandraConnection:
    """Connect and bootstrap the schema; returns the open connection."""
    connection = AsyncCassandraConnection(settings)
    await create_schema(connection.connect(), settings)
    logger.info("cassandra_initialized", keyspace=settings.cassandra_keyspace)
    return connection
