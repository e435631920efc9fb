"""
Unit tests for stream provisioning.

Tests cover:
- Group and stream creation order
- Stream-only creation
- Confirmation describes and eventual visibility
- Exact-name matching and "already exists" races
"""

import pytest

from logship.cwlogs_stream.delivery.errors import ProvisioningError
from logship.cwlogs_stream.delivery.provisioner import StreamProvisioner
from logship.cwlogs_stream.remote.base import RemoteLogError, ResourceAlreadyExistsError
from logship.cwlogs_stream.remote.memory import InMemoryLogService


async def no_sleep(delay):
    return None


class TestStreamProvisioner:
    """Tests for StreamProvisioner."""

    @pytest.fixture
    def service(self):
        return InMemoryLogService()

    @pytest.fixture
    def provisioner(self, service):
        return StreamProvisioner(service, "app", "web-1", sleep=no_sleep)

    @pytest.mark.asyncio
    async def test_existing_stream_returns_token(self, service, provisioner):
        """Describe alone is enough when the stream exists."""
        service.add_stream("app", "web-1", token="42")

        token = await provisioner.ensure()

        assert token == "42"
        assert service.operations() == ["describe_streams"]

    @pytest.mark.asyncio
    async def test_missing_group_creates_group_then_stream(self, service, provisioner):
        """Group missing: create group, create stream, confirm."""
        token = await provisioner.ensure()

        assert token is None
        assert service.operations() == [
            "describe_streams",
            "create_group",
            "create_stream",
            "describe_streams",
        ]
        assert provisioner.groups_created == 1
        assert provisioner.streams_created == 1

    @pytest.mark.asyncio
    async def test_missing_stream_creates_stream_only(self, service, provisioner):
        service.add_stream("app", "other")

        await provisioner.ensure()

        assert service.operations() == [
            "describe_streams",
            "create_stream",
            "describe_streams",
        ]
        assert provisioner.groups_created == 0

    @pytest.mark.asyncio
    async def test_prefix_sibling_does_not_count(self, service, provisioner):
        """A stream that merely shares the prefix is not the target."""
        service.add_stream("app", "web-10", token="99")

        token = await provisioner.ensure()

        assert token is None
        assert "create_stream" in service.operations()

    @pytest.mark.asyncio
    async def test_describe_call_uses_stream_name_as_prefix(self, service, provisioner):
        service.add_stream("app", "web-1")

        await provisioner.ensure()

        call = service.calls_for("describe_streams")[0]
        assert call.args == {"group_name": "app", "stream_name_prefix": "web-1"}

    @pytest.mark.asyncio
    async def test_waits_for_created_stream_to_become_visible(self):
        """A lagging create is confirmed by further describes, never a second create."""
        service = InMemoryLogService(create_visibility_lag=2)
        delays = []

        async def sleep(delay):
            delays.append(delay)

        provisioner = StreamProvisioner(
            service, "app", "web-1", verify_attempts=3, verify_interval=0.25, sleep=sleep
        )

        await provisioner.ensure()

        assert service.operations().count("create_stream") == 1
        assert service.operations().count("describe_streams") == 4
        assert delays == [0.25, 0.25]

    @pytest.mark.asyncio
    async def test_stream_never_visible_raises(self):
        service = InMemoryLogService(create_visibility_lag=10)
        provisioner = StreamProvisioner(service, "app", "web-1", verify_attempts=2, sleep=no_sleep)

        with pytest.raises(ProvisioningError) as exc_info:
            await provisioner.ensure()

        assert exc_info.value.group_name == "app"
        assert exc_info.value.stream_name == "web-1"
        assert service.operations().count("create_stream") == 1

    @pytest.mark.asyncio
    async def test_create_stream_race(self, service):
        """create_stream answering 'already exists' still confirms via describe."""
        service.add_stream("app", "placeholder")
        provisioner = StreamProvisioner(service, "app", "web-1", sleep=no_sleep)

        original_create = service.create_stream

        async def racing_create(group_name, stream_name):
            await original_create(group_name, stream_name)
            raise ResourceAlreadyExistsError("created by someone else")

        service.create_stream = racing_create

        token = await provisioner.ensure()

        assert token is None
        assert service.operations()[-1] == "describe_streams"

    @pytest.mark.asyncio
    async def test_unexpected_create_error_propagates(self, service, provisioner):
        service.fail_next("create_group", RemoteLogError("denied", code="AccessDeniedException"))

        with pytest.raises(RemoteLogError) as exc_info:
            await provisioner.ensure()

        assert exc_info.value.code == "AccessDeniedException"

    def test_rejects_zero_verify_attempts(self, service):
        with pytest.raises(ValueError):
            StreamProvisioner(service, "app", "web-1", verify_attempts=0)
