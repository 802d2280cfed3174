"""Tests for loguru configuration helpers."""

import asyncio

from loguru import logger

from auroralens.utils import configure_logging, instance_context


class TestConfigureLogging:
    """Test sink replacement and level filtering."""

    def test_level_filters_messages(self, capsys):
        """Should emit messages at or above the configured level only."""
        configure_logging(level="WARNING")

        logger.info("classified 12 metrics")
        logger.warning("dropped 2 metrics")

        err = capsys.readouterr().err
        assert "dropped 2 metrics" in err
        assert "classified 12 metrics" not in err

    def test_replaces_existing_sinks(self, capsys):
        """Should not duplicate output when called twice."""
        configure_logging(level="INFO")
        configure_logging(level="INFO")

        logger.info("snapshot built")

        assert capsys.readouterr().err.count("snapshot built") == 1

    def test_custom_sink(self):
        """Should write to the given sink without colors."""
        lines = []
        configure_logging(level="DEBUG", sink=lines.append)

        logger.debug("candidate rejected")

        assert lines == ["DEBUG    | - | candidate rejected\n"]


class TestInstanceContext:
    """Test per-evaluation instance tagging."""

    def test_tags_records_inside_block(self):
        """Should show the instance identifier inside the block and a dash outside."""
        lines = []
        configure_logging(sink=lines.append)

        with instance_context("db-writer"):
            logger.info("fetching batches")
        logger.info("done")

        assert lines == ["INFO     | db-writer | fetching batches\n", "INFO     | - | done\n"]

    def test_concurrent_evaluations(self):
        """Should keep the identifier of each concurrent task."""
        records = []
        logger.add(lambda message: records.append((message.record["extra"]["instance"], message.record["message"])))

        async def evaluate(identifier):
            with instance_context(identifier):
                await asyncio.sleep(0)
                logger.info(identifier)

        async def both():
            await asyncio.gather(evaluate("db-writer"), evaluate("db-reader"))

        asyncio.run(both())

        assert sorted(records) == [("db-reader", "db-reader"), ("db-writer", "db-writer")]
