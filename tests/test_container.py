"""
Lifecycle tests for Container: readiness pipeline, port lookup, disposal.

All tests run against FakeClient; no container engine is needed.
"""
from __future__ import annotations

import asyncio
import gc
import logging
import time

import pytest

from dockside import (
    CleanupPolicy,
    Container,
    ContainerState,
    Image,
    PortNotMappedError,
    PortProtocol,
    RuntimeClientError,
    SandboxNotReadyError,
    WaitFor,
)
from dockside.container import run_blocking
from tests.clients.fake_client import FakeClient


def _image(*conditions) -> Image:
    return Image(name="fake/service", tag="1.0").with_wait_for(*conditions)


# =============================================================================
# Readiness pipeline
# =============================================================================


class TestReadiness:
    """Conditions are evaluated in order and all must hold before create returns."""

    @pytest.mark.asyncio
    async def test_no_conditions_ready_immediately(self):
        client = FakeClient()
        start = time.monotonic()
        container = await Container.create(_image(), client)

        assert time.monotonic() - start < 0.5
        assert container.state is ContainerState.READY
        assert client.count("logs:stdout") == 0
        await container.aclose()

    @pytest.mark.asyncio
    async def test_nothing_condition_ready_immediately(self):
        client = FakeClient()
        start = time.monotonic()
        container = await Container.create(
            _image(WaitFor.nothing(), WaitFor.nothing()), client
        )

        assert time.monotonic() - start < 0.5
        assert container.state is ContainerState.READY
        await container.aclose()

    @pytest.mark.asyncio
    async def test_duration_waits_at_least_given_time(self):
        client = FakeClient()
        start = time.monotonic()
        container = await Container.create(_image(WaitFor.seconds(0.2)), client)

        # Small allowance for event loop clock resolution
        assert time.monotonic() - start >= 0.19
        await container.aclose()

    @pytest.mark.asyncio
    async def test_stdout_message_ready_after_second_line(self):
        client = FakeClient(stdout=[b"initializing\n", b"ready\n"])
        container = await Container.create(_image(WaitFor.stdout("ready")), client)

        assert container.state is ContainerState.READY
        assert client.closed_streams == [(container.id, container.image.ready_conditions[0].source)]
        await container.aclose()

    @pytest.mark.asyncio
    async def test_stderr_message_reads_stderr(self):
        client = FakeClient(stdout=[b"nothing here\n"], stderr=[b"Public node URL: enode://x\n"])
        container = await Container.create(
            _image(WaitFor.stderr("Public node URL:")), client
        )

        assert client.count("logs:stderr", container.id) == 1
        assert client.count("logs:stdout", container.id) == 0
        await container.aclose()

    @pytest.mark.asyncio
    async def test_stream_closed_before_message_fails_not_ready(self):
        client = FakeClient(stdout=[b"initializing\n"])

        with pytest.raises(SandboxNotReadyError) as excinfo:
            await Container.create(_image(WaitFor.stdout("ready")), client)

        err = excinfo.value
        assert err.reason == "end_of_stream"
        assert err.sandbox_id == "fake-1"
        assert err.condition.message == "ready"
        assert err.details["sandbox_id"] == "fake-1"

    @pytest.mark.asyncio
    async def test_failed_readiness_tears_down_container(self):
        client = FakeClient(stdout=[b"initializing\n"])

        with pytest.raises(SandboxNotReadyError):
            await Container.create(_image(WaitFor.stdout("ready")), client)

        assert client.count("stop", "fake-1") == 1
        assert client.count("rm", "fake-1") == 1

    @pytest.mark.asyncio
    async def test_failed_readiness_with_keep_leaves_container(self):
        client = FakeClient(stdout=[b"initializing\n"])

        with pytest.raises(SandboxNotReadyError):
            await Container.create(
                _image(WaitFor.stdout("ready")), client, cleanup=CleanupPolicy.KEEP
            )

        assert client.count("stop") == 0
        assert client.count("rm") == 0

    @pytest.mark.asyncio
    async def test_log_timeout_fails_not_ready(self):
        client = FakeClient(stdout=[b"initializing\n"], hold_open=True)

        with pytest.raises(SandboxNotReadyError) as excinfo:
            await Container.create(_image(WaitFor.stdout("ready", timeout=0.05)), client)

        assert excinfo.value.reason == "timeout"
        assert client.closed_streams == [("fake-1", excinfo.value.condition.source)]

    @pytest.mark.asyncio
    async def test_conditions_evaluated_in_declaration_order(self):
        client = FakeClient(
            stdout=[b"initializing\n", b"accepting connections\n"],
            stderr=[b"warmed up\n"],
        )
        container = await Container.create(
            _image(
                WaitFor.stdout("initializing"),
                WaitFor.stderr("warmed up"),
                WaitFor.stdout("accepting connections"),
            ),
            client,
        )

        log_calls = [op for op, _ in client.calls if op.startswith("logs:")]
        assert log_calls == ["logs:stdout", "logs:stderr", "logs:stdout"]
        await container.aclose()

    @pytest.mark.asyncio
    async def test_state_tracks_condition_being_evaluated(self):
        class TrackedContainer(Container):
            instances = []

            def __init__(self, *args, **kwargs):
                super().__init__(*args, **kwargs)
                self.instances.append(self)

        client = FakeClient()
        image = _image(WaitFor.seconds(0.2), WaitFor.nothing(), WaitFor.seconds(0.2))
        task = asyncio.ensure_future(TrackedContainer.create(image, client))

        await asyncio.sleep(0.1)
        (handle,) = TrackedContainer.instances
        first = (task.done(), handle.state, handle.condition_index)
        await asyncio.sleep(0.2)
        third = (task.done(), handle.state, handle.condition_index)

        container = await task

        assert first == (False, ContainerState.EVALUATING, 0)
        assert third == (False, ContainerState.EVALUATING, 2)
        assert container is handle
        assert container.state is ContainerState.READY
        assert container.condition_index is None
        await container.aclose()

    @pytest.mark.asyncio
    async def test_create_failure_propagates_without_teardown(self):
        client = FakeClient(create_error=RuntimeClientError("engine down", operation="create"))

        with pytest.raises(RuntimeClientError):
            await Container.create(_image(), client)

        assert client.count("stop") == 0
        assert client.count("rm") == 0

    @pytest.mark.asyncio
    async def test_run_args_forwarded(self):
        from dockside import RunArgs

        client = FakeClient()
        run_args = RunArgs(name="db", network="testnet")
        container = await Container.create(_image(), client, run_args=run_args)

        assert client.run_args[container.id] == run_args
        await container.aclose()


# =============================================================================
# Ports
# =============================================================================


class TestPorts:
    @pytest.mark.asyncio
    async def test_get_host_port_returns_mapping(self):
        client = FakeClient(ports={(27017, PortProtocol.TCP): 49153})
        container = await Container.create(_image(), client)

        assert await container.get_host_port(27017) == 49153
        await container.aclose()

    @pytest.mark.asyncio
    async def test_unmapped_port_raises_distinct_error(self):
        client = FakeClient(ports={(27017, PortProtocol.TCP): 49153})
        container = await Container.create(_image(), client)

        with pytest.raises(PortNotMappedError) as excinfo:
            await container.get_host_port(9999)

        assert not isinstance(excinfo.value, RuntimeClientError)
        assert excinfo.value.port == 9999
        assert excinfo.value.protocol == "tcp"
        await container.aclose()

    @pytest.mark.asyncio
    async def test_protocol_is_part_of_key(self):
        client = FakeClient(ports={(53, PortProtocol.UDP): 40000})
        container = await Container.create(_image(), client)

        assert await container.get_host_port(53, PortProtocol.UDP) == 40000
        with pytest.raises(PortNotMappedError):
            await container.get_host_port(53)
        await container.aclose()

    @pytest.mark.asyncio
    async def test_each_lookup_queries_runtime(self):
        client = FakeClient(ports={(80, PortProtocol.TCP): 32768})
        container = await Container.create(_image(), client)

        await container.get_host_port(80)
        await container.get_host_port(80)

        assert client.count("ports", container.id) == 2
        await container.aclose()


# =============================================================================
# Runtime operations
# =============================================================================


class TestOperations:
    @pytest.mark.asyncio
    async def test_start_and_stop_delegate(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        await container.stop()
        await container.start()

        assert client.count("stop", container.id) == 1
        assert client.count("start", container.id) == 1
        await container.aclose()

    @pytest.mark.asyncio
    async def test_explicit_rm_counts_as_disposal(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        await container.rm()
        await container.aclose()
        container.close()

        assert client.count("rm", container.id) == 1
        assert client.count("stop", container.id) == 0
        assert container.disposed

    @pytest.mark.asyncio
    async def test_explicit_rm_propagates_errors(self):
        client = FakeClient(rm_error=RuntimeClientError("boom", operation="rm"))
        container = await Container.create(_image(), client)

        with pytest.raises(RuntimeClientError):
            await container.rm()


# =============================================================================
# Disposal
# =============================================================================


class TestDisposal:
    @pytest.mark.asyncio
    async def test_dispose_twice_issues_one_stop_rm_pair(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        await container.aclose()
        await container.aclose()

        assert client.count("stop", container.id) == 1
        assert client.count("rm", container.id) == 1
        assert container.state is ContainerState.DISPOSED

    @pytest.mark.asyncio
    async def test_mixed_sync_and_async_disposal_is_idempotent(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        container.close()
        await container.aclose()
        container.close()

        assert client.count("stop", container.id) == 1
        assert client.count("rm", container.id) == 1

    @pytest.mark.asyncio
    async def test_stop_issued_before_rm(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        await container.aclose()

        teardown = [op for op, _ in client.calls if op in ("stop", "rm")]
        assert teardown == ["stop", "rm"]

    @pytest.mark.asyncio
    async def test_keep_policy_issues_no_calls(self):
        client = FakeClient()
        container = await Container.create(_image(), client, cleanup=CleanupPolicy.KEEP)

        await container.aclose()
        container.close()

        assert client.count("stop") == 0
        assert client.count("rm") == 0
        assert container.disposed

    @pytest.mark.asyncio
    async def test_default_cleanup_comes_from_environment(self, monkeypatch):
        from dockside.config import reset_settings

        monkeypatch.setenv("DOCKSIDE_CLEANUP", "keep")
        reset_settings()
        client = FakeClient()
        container = await Container.create(_image(), client)

        assert container.cleanup is CleanupPolicy.KEEP
        await container.aclose()
        assert client.count("rm") == 0

    @pytest.mark.asyncio
    async def test_sync_close_inside_running_loop_completes(self):
        client = FakeClient()
        container = await Container.create(_image(), client)

        # Blocks this loop, teardown runs on a private loop in a worker thread
        container.close()

        assert client.count("stop", container.id) == 1
        assert client.count("rm", container.id) == 1

    def test_sync_close_without_loop(self):
        client = FakeClient()
        container = asyncio.run(Container.create(_image(), client))

        with container:
            assert container.state is ContainerState.READY

        assert client.count("stop", container.id) == 1
        assert client.count("rm", container.id) == 1

    @pytest.mark.asyncio
    async def test_async_context_manager_disposes(self):
        client = FakeClient()
        async with await Container.create(_image(), client) as container:
            container_id = container.id

        assert client.count("rm", container_id) == 1

    @pytest.mark.asyncio
    async def test_garbage_collected_handle_is_torn_down(self):
        client = FakeClient()
        container = await Container.create(_image(), client)
        container_id = container.id

        del container
        gc.collect()

        assert client.count("stop", container_id) == 1
        assert client.count("rm", container_id) == 1

    @pytest.mark.asyncio
    async def test_teardown_failure_logged_and_rm_still_attempted(self, caplog):
        client = FakeClient(stop_error=RuntimeClientError("stop failed", operation="stop"))
        container = await Container.create(_image(), client)

        with caplog.at_level(logging.ERROR, logger="dockside.container"):
            await container.aclose()

        assert client.count("rm", container.id) == 1
        assert "Failed to stop container" in caplog.text

    @pytest.mark.asyncio
    async def test_teardown_failure_does_not_raise_from_close(self):
        client = FakeClient(rm_error=RuntimeClientError("rm failed", operation="rm"))
        container = await Container.create(_image(), client)

        container.close()

        assert client.count("rm", container.id) == 1


# =============================================================================
# Concurrency
# =============================================================================


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_creation_keeps_handles_independent(self):
        client = FakeClient(
            stdout=lambda cid: [b"booting\n", f"{cid} ready\n".encode()],
            ports=lambda cid: {(8080, PortProtocol.TCP): 40000 + int(cid.split("-")[1])},
        )

        containers = await asyncio.gather(
            *(
                Container.create(_image(WaitFor.stdout("ready")), client)
                for _ in range(10)
            )
        )

        ids = [c.id for c in containers]
        assert len(set(ids)) == 10
        assert all(c.state is ContainerState.READY for c in containers)
        for container in containers:
            expected = 40000 + int(container.id.split("-")[1])
            assert await container.get_host_port(8080) == expected

        await asyncio.gather(*(c.aclose() for c in containers))
        for container_id in ids:
            assert client.count("stop", container_id) == 1
            assert client.count("rm", container_id) == 1


def test_run_blocking_returns_result():
    async def compute():
        await asyncio.sleep(0)
        return 42

    assert run_blocking(compute) == 42
