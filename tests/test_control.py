"""
Unit tests for the CommandSubscriber class.

Tests cover command dispatch order, reconnect counting, escalation to
recovery and prompt cancellation of a pending read.
"""

import asyncio

from campush.control import STATUS_CONNECTED, STATUS_RECONNECTING, CommandSubscriber
from campush.exceptions import ProtocolError
from campush.models import CommandAction, ControlCommand


class ControlHarness:
    """Subscriber wired to a fake hub with recorded handlers."""

    def __init__(self, hub):
        self.hub = hub
        self.active = True
        self.token = "tok-1"
        self.calls = []
        self.statuses = []
        self.recover_calls = 0
        self.subscriber = CommandSubscriber(
            hub,
            token=lambda: self.token,
            is_active=lambda: self.active,
            on_start=self.on_start,
            on_stop=self.on_stop,
            recover=self.recover,
            on_status=self.statuses.append,
            backoff=0,
            recovery_threshold=2,
        )

    async def on_start(self, stream_id, path):
        self.calls.append(("start", stream_id, path))

    async def on_stop(self, stream_id):
        self.calls.append(("stop", stream_id))

    async def recover(self):
        self.recover_calls += 1
        self.token = f"tok-{self.recover_calls + 1}"


class TestCommandSubscriber:
    """Test cases for the CommandSubscriber class."""

    def test_commands_dispatched_in_arrival_order(self, fake_hub, start_command, stop_command, until):
        harness = ControlHarness(fake_hub)
        fake_hub.control_script = [[
            start_command("s1", "live/video-cam1"),
            stop_command("s1"),
            start_command("s2"),
        ]]

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 2)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert harness.calls == [
            ("start", "s1", "live/video-cam1"),
            ("stop", "s1"),
            ("start", "s2", None),
        ]

    def test_two_failures_trigger_one_recovery(self, fake_hub, control_failure, until):
        harness = ControlHarness(fake_hub)
        fake_hub.control_script = [control_failure(), control_failure()]

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 1)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert harness.recover_calls == 1
        assert harness.subscriber.recoveries == 1
        assert harness.subscriber.consecutive_failures == 0
        assert fake_hub.control_tokens == ["tok-1", "tok-1", "tok-2"]
        assert harness.statuses[-1] == STATUS_CONNECTED
        assert STATUS_RECONNECTING in harness.statuses

    def test_successful_connect_resets_failure_count(self, fake_hub, control_failure, until):
        harness = ControlHarness(fake_hub)
        # Failure, then a connection the server closes, then one that stays open
        fake_hub.control_script = [control_failure(), []]

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 2)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert harness.recover_calls == 0
        assert harness.subscriber.consecutive_failures == 0

    def test_server_close_counts_as_failure(self, fake_hub, until):
        harness = ControlHarness(fake_hub)
        fake_hub.control_script = [[], []]

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 3)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert harness.recover_calls == 1

    def test_protocol_errors_also_recover(self, fake_hub, until):
        harness = ControlHarness(fake_hub)
        fake_hub.control_script = [ProtocolError("bad token", status=401)] * 4

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 1)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert harness.recover_calls == 2

    def test_stop_cancels_pending_read(self, fake_hub, until):
        harness = ControlHarness(fake_hub)

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 1)
            assert harness.subscriber.running
            await asyncio.wait_for(harness.subscriber.stop(), timeout=1)
            return harness.subscriber.running

        assert asyncio.run(main()) is False
        assert fake_hub.closed_streams == 1

    def test_loop_exits_when_publisher_turns_off(self, fake_hub, control_failure, until):
        harness = ControlHarness(fake_hub)
        harness.subscriber.backoff = 0.05
        fake_hub.control_script = [control_failure()] * 10

        async def main():
            await harness.subscriber.start()
            await until(lambda: len(fake_hub.control_tokens) >= 1)
            harness.active = False
            await until(lambda: not harness.subscriber.running)

        asyncio.run(main())

        assert harness.recover_calls <= 1
        assert len(fake_hub.control_tokens) <= 2

    def test_restart_supersedes_previous_loop(self, fake_hub, until):
        harness = ControlHarness(fake_hub)

        async def main():
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 1)
            await harness.subscriber.start()
            await until(lambda: fake_hub.connected == 2)
            await harness.subscriber.stop()

        asyncio.run(main())

        assert fake_hub.closed_streams == 2

    def test_dispatch_ignores_blank_stream_id(self, fake_hub, start_command):
        harness = ControlHarness(fake_hub)

        async def main():
            await harness.subscriber.dispatch(ControlCommand(CommandAction.STOP, ""))
            await harness.subscriber.dispatch(start_command("s3"))

        asyncio.run(main())
        assert harness.calls == [("start", "s3", None)]
