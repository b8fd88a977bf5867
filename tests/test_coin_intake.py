"""
Tests for the coin intake service: serial lines to ledger credits.
"""

import pytest

from kiosk.application.coin_intake import CoinIntakeService


@pytest.fixture
def intake(ledger, notifier, scheduler):
    return CoinIntakeService(ledger, notifier, scheduler=scheduler, fragment_window=0.14)


class TestCoinIntake:
    """Decoder outcomes applied in order."""

    @pytest.mark.asyncio
    async def test_coin_credits_ledger_and_notifies(self, intake, ledger, events):
        """Test that an accepted coin is credited and announced."""
        await ledger.init()
        intake.start()

        intake.feed_line("10\r\n")
        await intake.join()

        assert ledger.snapshot().balance.amount == 10
        assert ("balance", 10, None) in events
        assert ("coinAccepted", {"value": 10, "balance": 10}, None) in events
        await intake.stop()

    @pytest.mark.asyncio
    async def test_split_code_credits_once(self, intake, ledger, scheduler, events):
        """Test that "2" + "0" credits 20 exactly once."""
        await ledger.init()
        intake.start()

        intake.feed_line("2")
        intake.feed_line("0")
        scheduler.advance(1.0)
        await intake.join()

        assert ledger.snapshot().balance.amount == 20
        assert [e for e in events if e[0] == "coinAccepted"] == [
            ("coinAccepted", {"value": 20, "balance": 20}, None)
        ]
        await intake.stop()

    @pytest.mark.asyncio
    async def test_credits_follow_arrival_order(self, intake, ledger, events):
        """Test that running balances reflect the order coins arrived in."""
        await ledger.init()
        intake.start()

        for line in ["5", "10", "20", "5"]:
            intake.feed_line(line)
        await intake.join()

        accepted = [data for event, data, _ in events if event == "coinAccepted"]
        assert [a["balance"] for a in accepted] == [5, 15, 35, 40]
        await intake.stop()

    @pytest.mark.asyncio
    async def test_warning_is_published_not_credited(self, intake, ledger, events):
        """Test that an unsupported coin only produces a warning event."""
        await ledger.init()
        intake.start()

        intake.feed_line("7")
        await intake.join()

        assert ledger.snapshot().balance.amount == 0
        assert events == [
            (
                "coinParserWarning",
                {"code": "UNSUPPORTED_COIN", "message": "Ignored unsupported coin '7'."},
                None,
            )
        ]
        await intake.stop()

    @pytest.mark.asyncio
    async def test_persistence_failure_does_not_stop_worker(self, intake, ledger, store):
        """Test that the worker keeps going after a failed credit."""
        await ledger.init()
        intake.start()

        store.fail = True
        intake.feed_line("5")
        await intake.join()
        store.fail = False
        intake.feed_line("10")
        await intake.join()

        assert intake.is_running
        assert ledger.snapshot().balance.amount == 10
        await intake.stop()

    @pytest.mark.asyncio
    async def test_stop_credits_pending_one(self, intake, ledger, scheduler, events):
        """Test that a lone "1" still waiting at shutdown is credited once."""
        await ledger.init()
        intake.start()

        intake.feed_line("1")
        await intake.stop()
        scheduler.advance(1.0)

        assert not intake.is_running
        assert ledger.snapshot().balance.amount == 1
        assert [e for e in events if e[0] == "coinAccepted"] == [
            ("coinAccepted", {"value": 1, "balance": 1}, None)
        ]
