"""Unit tests for the unit of work base class."""

from __future__ import annotations

from typing import Any

import pytest
from cached_repo.domain.exceptions import EntityValidationError
from cached_repo.domain.interfaces import UnitOfWork


class RecordingUnitOfWork(UnitOfWork[Any]):
    def __init__(self) -> None:
        super().__init__()
        self.events: list[str] = []

    @property
    def repository(self) -> Any:
        return object()

    def commit(self) -> None:
        self.events.append("commit")

    def rollback(self) -> None:
        self.events.append("rollback")

    def _dispose(self) -> None:
        self.events.append("dispose")


class TestUnitOfWork:
    """Test UnitOfWork context handling."""

    def test_clean_exit_closes_without_rollback(self) -> None:
        """Test the success path."""
        with RecordingUnitOfWork() as uow:
            uow.commit()

        assert uow.events == ["commit", "dispose"]
        assert uow.closed

    def test_exception_rolls_back_then_closes(self) -> None:
        """Test the failure path re-raises after cleanup."""
        uow = RecordingUnitOfWork()

        with pytest.raises(EntityValidationError), uow:
            raise EntityValidationError([("email", "is required")])

        assert uow.events == ["rollback", "dispose"]

    def test_close_is_idempotent(self) -> None:
        """Test that the context is released once."""
        uow = RecordingUnitOfWork()

        uow.close()
        uow.close()

        assert uow.events == ["dispose"]

    def test_failing_rollback_still_closes(self) -> None:
        """Test that dispose runs even when rollback raises."""

        class BrokenRollback(RecordingUnitOfWork):
            def rollback(self) -> None:
                raise RuntimeError("connection lost")

        uow = BrokenRollback()

        with pytest.raises(RuntimeError), uow:
            raise ValueError("original")

        assert uow.events == ["dispose"]
