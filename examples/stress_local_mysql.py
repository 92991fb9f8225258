"""
Quick sanity run: 6 clients x 20 executions of one query against a local MySQL.
Run: uv run examples/stress_local_mysql.py
"""
import asyncio
import os

from sqldrizzler import DatabaseConfig, QueryDrizzler, render_report, render_timeline
from sqldrizzler.logging_config import setup_logging


async def main():
    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    database = DatabaseConfig.from_host(
        os.getenv("MYSQL_HOST", "localhost:3306"),
        user=os.getenv("MYSQL_USER", "root"),
        password=os.getenv("MYSQL_PASSWORD", ""),
        database=os.getenv("MYSQL_DB", "mysql"),
    )

    d = QueryDrizzler(
        query=os.getenv("QUERY", "SELECT COUNT(*) FROM information_schema.tables"),
        interval_s=1.0,
        concurrency=6,
        iterations=20,
        database=database,
    )
    stats = await d.run()
    print()
    print(render_report(stats, d.started_at, d.finished_at))
    print()
    print(render_timeline(d.timeline, width=100))


if __name__ == "__main__":
    asyncio.run(main())
