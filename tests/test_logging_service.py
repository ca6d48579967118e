"""Tests for repository-scoped log files."""

from __future__ import annotations

import asyncio
import logging

import pytest

from copilot_bulk_config.app.services.logging_service import (
    get_logger,
    repository_context,
    repository_log_path,
    setup_logging,
)


@pytest.fixture
def file_logging():
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    setup_logging(logging.DEBUG)
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in saved_handlers:
        root.addHandler(handler)
    root.setLevel(saved_level)


class TestRepositoryLogs:
    def test_records_routed_by_repository(self, file_logging, app_home):
        logger = get_logger("copilot_bulk_config.test")
        logger.info("run-level message")
        with repository_context("me/api"):
            logger.info("pipeline message")

        repo_log = repository_log_path("me/api")
        assert repo_log == app_home / "logs" / "repos" / "me__api.log"
        assert "pipeline message" in repo_log.read_text(encoding="utf-8")
        run_log = (app_home / "logs" / "run.log").read_text(encoding="utf-8")
        assert "run-level message" in run_log
        assert "pipeline message" not in run_log

    @pytest.mark.asyncio
    async def test_concurrent_pipelines_keep_separate_files(self, file_logging):
        logger = get_logger("copilot_bulk_config.test")

        async def _pipeline(full_name: str):
            with repository_context(full_name):
                for step in range(3):
                    logger.info(f"{full_name} step {step}")
                    await asyncio.sleep(0)

        await asyncio.gather(_pipeline("me/a"), _pipeline("me/b"))

        a_log = repository_log_path("me/a").read_text(encoding="utf-8")
        b_log = repository_log_path("me/b").read_text(encoding="utf-8")
        assert "me/a step 2" in a_log and "me/b" not in a_log
        assert "me/b step 2" in b_log and "me/a" not in b_log
