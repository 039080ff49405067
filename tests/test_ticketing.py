"""Tests for the ticket lifecycle."""

import asyncio

import pytest

from s7webapi.enums import TicketState
from s7webapi.exceptions import (
    InvalidTicketIdError,
    TicketClosedError,
    TicketNotCompletedError,
    TicketNotFoundError,
)
from s7webapi.ticketing import TicketHandler, TicketHandlerConfig


class TestTicketValidation:
    """Tests for client-side ticket id checks."""

    @pytest.mark.asyncio
    async def test_short_id_rejected_before_any_call(self, device):
        """Test a 27 character id fails without contacting the device."""
        handler = TicketHandler(device)

        with pytest.raises(InvalidTicketIdError):
            await handler.close("x" * 27)

        assert device.calls == []

    @pytest.mark.asyncio
    async def test_scope_validates_before_body(self, device):
        """Test the scope rejects an invalid id before running the body."""
        handler = TicketHandler(device)
        entered = False

        with pytest.raises(InvalidTicketIdError):
            async with handler.scope("short"):
                entered = True

        assert entered is False
        assert device.calls == []

    def test_invalid_id_is_value_error(self, device):
        """Test validation errors are also ValueErrors."""
        with pytest.raises(ValueError):
            TicketHandler(device).validate("")


class TestTicketScope:
    """Tests for closing tickets on every exit path."""

    @pytest.mark.asyncio
    async def test_closed_once_on_success(self, device):
        """Test a successful body closes the ticket exactly once."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")

        async with handler.scope(ticket_id):
            await device.upload_ticket(ticket_id, b"data")

        assert device.closed == [ticket_id]

    @pytest.mark.asyncio
    async def test_closed_once_on_error(self, device):
        """Test a failing body closes the ticket and re-raises."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")

        with pytest.raises(RuntimeError, match="boom"):
            async with handler.scope(ticket_id):
                raise RuntimeError("boom")

        assert device.closed == [ticket_id]

    @pytest.mark.asyncio
    async def test_closed_once_on_cancellation(self, device):
        """Test cancellation inside the body still closes the ticket."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")

        with pytest.raises(asyncio.CancelledError):
            async with handler.scope(ticket_id):
                raise asyncio.CancelledError()

        assert device.closed == [ticket_id]

    @pytest.mark.asyncio
    async def test_body_error_kept_when_ticket_already_gone(self, device):
        """Test the body error propagates when the device dropped the ticket."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")

        with pytest.raises(RuntimeError, match="boom"):
            async with handler.scope(ticket_id):
                # Device drops the ticket before the scope closes it
                await device.close_ticket(ticket_id)
                raise RuntimeError("boom")

    @pytest.mark.asyncio
    async def test_closed_ticket_cannot_be_reused(self, device):
        """Test a closed id is rejected without a device call."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")
        await handler.close(ticket_id)
        calls_before = len(device.calls)

        with pytest.raises(TicketClosedError):
            await handler.browse(ticket_id)

        assert len(device.calls) == calls_before


class TestTicketState:
    """Tests for completion checks."""

    @pytest.mark.asyncio
    async def test_assert_completed(self, device):
        """Test a completed ticket is returned."""
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")
        await device.upload_ticket(ticket_id, b"data")

        ticket = await handler.assert_completed(ticket_id)

        assert ticket.state == TicketState.COMPLETED

    @pytest.mark.asyncio
    async def test_busy_ticket_is_not_completed(self, device):
        """Test a busy ticket raises TicketNotCompletedError."""
        device.complete_tickets = False
        handler = TicketHandler(device)
        ticket_id = await device.files_create("/a.txt")
        await device.upload_ticket(ticket_id, b"data")

        with pytest.raises(TicketNotCompletedError) as exc_info:
            await handler.assert_completed(ticket_id)

        assert exc_info.value.ticket.state == TicketState.BUSY
        assert ticket_id in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_check_disabled_skips_browse(self, device):
        """Test a disabled upload check does not browse the ticket."""
        device.complete_tickets = False
        handler = TicketHandler(
            device, TicketHandlerConfig(check_after_upload=False)
        )
        ticket_id = await device.files_create("/a.txt")

        assert await handler.check_after_upload(ticket_id) is None
        assert device.method_calls("browse_tickets") == []

    @pytest.mark.asyncio
    async def test_browse_unknown_ticket(self, device):
        """Test browsing a ticket the device does not report."""
        handler = TicketHandler(device)

        with pytest.raises(TicketNotFoundError):
            await handler.browse("0" * 28)

    @pytest.mark.asyncio
    async def test_close_tolerates_missing_ticket(self, device):
        """Test closing a ticket the device already dropped."""
        handler = TicketHandler(device)
        ticket_id = "9" * 28

        await handler.close(ticket_id)

        with pytest.raises(TicketClosedError):
            handler.validate(ticket_id)
