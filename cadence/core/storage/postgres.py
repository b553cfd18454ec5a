# cadence/core/storage/postgres.py
from __future__ import annotations
import hashlib
from sqlalchemy import delete, select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from cadence.core.logging import get_logger
from cadence.core.models.database import DatabaseConfig
from cadence.core.models.job import ExecutionRecord, Job
from cadence.core.models.job_pg import Base, ExecutionRecordModel, JobModel
from cadence.core.utils.url import mask_database_url

SCHEMA_ADVISORY_LOCK_SQL = text('SELECT pg_advisory_xact_lock(CAST(:key AS BIGINT))')


class PostgresJobRepository:
    """
    PostgreSQL mirror of the job store and execution history.

    - cadence_jobs holds one row per job, upserted on every change
    - cadence_executions is append-only

    All operations are async and use SQLAlchemy async sessions.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        *,
        engine: AsyncEngine | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.config = config
        self.logger = get_logger('storage')

        if engine is None:
            engine = create_async_engine(
                self.config.database_url, **self.config.engine_options()
            )
        self.async_engine = engine
        self.session_factory = session_factory or async_sessionmaker(
            self.async_engine, expire_on_commit=False
        )
        self._schema_ready = False

        self.logger.info(
            f'PostgresJobRepository initialized for {mask_database_url(config.database_url)}'
        )

    @staticmethod
    def _schema_advisory_key() -> int:
        """Stable 64-bit key serializing DDL across processes."""
        h = hashlib.sha256(b'cadence-schema').digest()
        return int.from_bytes(h[:8], byteorder='big', signed=True)

    async def ensure_schema(self) -> None:
        """Create tables if missing. Safe to call repeatedly and concurrently."""
        if self._schema_ready:
            return
        async with self.async_engine.begin() as conn:
            await conn.execute(
                SCHEMA_ADVISORY_LOCK_SQL, {'key': self._schema_advisory_key()}
            )
            await conn.run_sync(Base.metadata.create_all)
        self._schema_ready = True
        self.logger.info('Schema ready')

    async def load_jobs(self) -> list[Job]:
        await self.ensure_schema()
        async with self.session_factory() as session:
            result = await session.execute(
                select(JobModel).order_by(JobModel.created_at.asc())
            )
            rows = list(result.scalars())

        jobs: list[Job] = []
        for row in rows:
            try:
                jobs.append(row.to_job())
            except Exception as e:
                # One corrupt row must not keep every other job from loading.
                self.logger.error(f"Skipping unreadable job row '{row.id}': {e}")
        return jobs

    async def save_job(self, job: Job) -> None:
        """Insert or update the job's row."""
        await self.ensure_schema()
        row = JobModel.from_job(job)
        values = {
            column.name: getattr(row, column.name)
            for column in JobModel.__table__.columns
        }
        stmt = pg_insert(JobModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[JobModel.id],
            set_={k: v for k, v in values.items() if k not in ('id', 'created_at')},
        )
        async with self.session_factory() as session:
            await session.execute(stmt)
            await session.commit()
        self.logger.debug(f"Saved job '{job.name}' ({job.id})")

    async def delete_job(self, job_id: str) -> bool:
        await self.ensure_schema()
        async with self.session_factory() as session:
            result = await session.execute(delete(JobModel).where(JobModel.id == job_id))
            await session.commit()

        rows_deleted = getattr(result, 'rowcount', 0)
        if rows_deleted > 0:
            self.logger.info(f"Deleted stored job '{job_id}'")
            return True
        self.logger.debug(f"No stored job to delete for '{job_id}'")
        return False

    async def append_execution(self, record: ExecutionRecord) -> None:
        await self.ensure_schema()
        async with self.session_factory() as session:
            session.add(ExecutionRecordModel.from_record(record))
            await session.commit()

    async def recent_executions(self, limit: int) -> list[ExecutionRecord]:
        await self.ensure_schema()
        async with self.session_factory() as session:
            result = await session.execute(
                select(ExecutionRecordModel)
                .order_by(ExecutionRecordModel.finished_at.desc())
                .limit(limit)
            )
            rows = list(result.scalars())
        return [row.to_record() for row in reversed(rows)]

    async def close(self) -> None:
        await self.async_engine.dispose()
        self.logger.info('Repository closed')
