"""
Tests for logging setup.
"""

import json
import logging

import pytest
import structlog

from spoils.config.logging import HANDLER_NAME, add_job_context, setup_logging


@pytest.fixture
def info_logging(settings):
    """Install the spoils handler at INFO and remove it afterwards."""
    root = logging.getLogger()
    previous_level = root.level

    setup_logging(settings.model_copy(update={"log_level": "INFO"}))
    yield

    for handler in list(root.handlers):
        if handler.get_name() == HANDLER_NAME:
            root.removeHandler(handler)
    root.setLevel(previous_level)
    structlog.contextvars.clear_contextvars()


def spoils_lines(output: str) -> list[dict]:
    return [json.loads(line) for line in output.splitlines() if line.startswith("{")]


def test_stdlib_extra_fields_are_rendered(info_logging, capsys):
    logging.getLogger("spoils.v1.ingredients.service").info(
        "Ingredient created", extra={"ingredient_id": 7, "ingredient_name": "Water"}
    )

    [line] = spoils_lines(capsys.readouterr().out)
    assert line["event"] == "Ingredient created"
    assert line["level"] == "info"
    assert line["logger"] == "spoils.v1.ingredients.service"
    assert line["ingredient_id"] == 7
    assert line["ingredient_name"] == "Water"


def test_job_context_reaches_stdlib_records(info_logging, capsys):
    add_job_context(job_id="8f14e45f", task_type="create_ingredient")

    logging.getLogger("spoils.v1.products.service").info(
        "Product stored", extra={"barcode": "3017620422003", "was_created": True}
    )

    [line] = spoils_lines(capsys.readouterr().out)
    assert line["job_id"] == "8f14e45f"
    assert line["task_type"] == "create_ingredient"
    assert line["was_created"] is True


def test_setup_is_idempotent(info_logging, settings):
    setup_logging(settings.model_copy(update={"log_level": "INFO"}))

    handlers = [h for h in logging.getLogger().handlers if h.get_name() == HANDLER_NAME]
    assert len(handlers) == 1
    assert logging.getLogger().level == logging.INFO
