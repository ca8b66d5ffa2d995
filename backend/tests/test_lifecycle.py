"""
tests.test_lifecycle
~~~~~~~~~~~~~~~~~~~~

RoomLifecycleManager: lazy provisioning, naming on collisions, release and
the single-provisioning guarantee under concurrent callers.
"""
from __future__ import annotations

import asyncio

import pytest

from app.core.errors import VideoRoomProvisionError
from app.realtime.lifecycle import RoomLifecycleManager
from app.services.video_rooms import VideoProviderError, VideoRoomStatus


class TestEnsureRoom:
    @pytest.mark.asyncio
    async def test_first_call_provisions_and_later_calls_reuse(self, lifecycle, video_client) -> None:
        first = await lifecycle.ensure_room("s1")
        second = await lifecycle.ensure_room("s1")

        assert first is second
        assert first.external_room_id == "RM0001"
        assert first.room_name == "s1"
        assert video_client.created == ["s1"]

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_provisioning(self, lifecycle, video_client) -> None:
        video_client.gate = asyncio.Event()
        tasks = [asyncio.create_task(lifecycle.ensure_room("s1")) for _ in range(3)]
        await asyncio.sleep(0)
        assert lifecycle.is_provisioning("s1")

        video_client.gate.set()
        rooms = await asyncio.gather(*tasks)

        assert video_client.created == ["s1"]
        assert {room.external_room_id for room in rooms} == {"RM0001"}
        assert not lifecycle.is_provisioning("s1")

    @pytest.mark.asyncio
    async def test_live_room_with_same_name_is_reused(self, lifecycle, video_client) -> None:
        video_client.preload("s1", VideoRoomStatus.IN_PROGRESS, sid="RMlive")

        room = await lifecycle.ensure_room("s1")

        assert room.external_room_id == "RMlive"
        assert video_client.fetched == ["s1"]

    @pytest.mark.asyncio
    async def test_completed_room_gets_a_derived_name(self, lifecycle, video_client) -> None:
        video_client.preload("s1", VideoRoomStatus.COMPLETED)

        room = await lifecycle.ensure_room("s1")

        assert room.room_name == "s1_1"
        assert room.external_room_id != "RMold"
        assert video_client.created == ["s1", "s1_1"]

    @pytest.mark.asyncio
    async def test_provider_failure_raises_and_clears_in_flight_marker(self, lifecycle, video_client) -> None:
        video_client.fail_with = VideoProviderError("HTTP 503", status_code=503)

        with pytest.raises(VideoRoomProvisionError):
            await lifecycle.ensure_room("s1")
        assert not lifecycle.is_provisioning("s1")
        assert lifecycle.get("s1") is None

        video_client.fail_with = None
        room = await lifecycle.ensure_room("s1")
        assert room.external_room_id == "RM0001"

    @pytest.mark.asyncio
    async def test_failure_reaches_every_waiter(self, lifecycle, video_client) -> None:
        video_client.gate = asyncio.Event()
        video_client.fail_with = VideoProviderError("HTTP 500", status_code=500)
        tasks = [asyncio.create_task(lifecycle.ensure_room("s1")) for _ in range(2)]
        await asyncio.sleep(0)

        video_client.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(result, VideoRoomProvisionError) for result in results)
        assert video_client.created == ["s1"]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, video_client) -> None:
        for name in ("s1", "s1_1"):
            video_client.preload(name, VideoRoomStatus.COMPLETED)
        lifecycle = RoomLifecycleManager(video_client, capacity=10, max_attempts=2)

        with pytest.raises(VideoRoomProvisionError):
            await lifecycle.ensure_room("s1")
        assert video_client.created == ["s1", "s1_1"]


class TestCreateRoom:
    @pytest.mark.asyncio
    async def test_create_overwrites_existing_mapping(self, lifecycle, video_client) -> None:
        first = await lifecycle.ensure_room("s1")
        lifecycle.attach("s1", "sid-viewer")

        second = await lifecycle.create_room("s1")

        assert second.external_room_id != first.external_room_id
        assert second.room_name == "s1_1"
        assert lifecycle.external_room_id("s1") == second.external_room_id
        assert second.connection_ids == {"sid-viewer"}

    @pytest.mark.asyncio
    async def test_create_never_reuses_live_room(self, lifecycle, video_client) -> None:
        video_client.preload("s1", VideoRoomStatus.IN_PROGRESS, sid="RMlive")

        room = await lifecycle.create_room("s1")

        assert room.external_room_id != "RMlive"
        assert room.room_name == "s1_1"


class TestReleaseRoom:
    @pytest.mark.asyncio
    async def test_recreate_after_release_uses_fresh_room(self, lifecycle, video_client) -> None:
        first = await lifecycle.ensure_room("s1")

        released = lifecycle.release_room("s1")
        assert released is first
        assert lifecycle.get("s1") is None

        second = await lifecycle.ensure_room("s1")
        assert second.external_room_id != first.external_room_id
        assert second.room_name == "s1_1"

    @pytest.mark.asyncio
    async def test_release_during_provisioning_discards_result(self, lifecycle, video_client) -> None:
        video_client.gate = asyncio.Event()
        task = asyncio.create_task(lifecycle.ensure_room("s1"))
        await asyncio.sleep(0)

        lifecycle.release_room("s1")
        video_client.gate.set()
        await task

        assert lifecycle.get("s1") is None

    @pytest.mark.asyncio
    async def test_release_during_provisioning_moves_to_next_name(self, lifecycle, video_client) -> None:
        video_client.gate = asyncio.Event()
        stale = asyncio.create_task(lifecycle.ensure_room("s1"))
        await asyncio.sleep(0)

        lifecycle.release_room("s1")
        assert not lifecycle.is_provisioning("s1")

        fresh = asyncio.create_task(lifecycle.ensure_room("s1"))
        await asyncio.sleep(0)
        video_client.gate.set()
        old_room, new_room = await asyncio.gather(stale, fresh)

        assert video_client.created == ["s1", "s1_1"]
        assert video_client.fetched == []
        assert new_room.external_room_id != old_room.external_room_id
        assert lifecycle.get("s1") is new_room

    def test_release_unknown_stream(self, lifecycle) -> None:
        assert lifecycle.release_room("nope") is None

    @pytest.mark.asyncio
    async def test_detach_removes_connection(self, lifecycle) -> None:
        await lifecycle.ensure_room("s1")
        lifecycle.attach("s1", "sid-1")
        lifecycle.attach("s1", "sid-2")

        lifecycle.detach("s1", "sid-1")

        assert lifecycle.get("s1").connection_ids == {"sid-2"}

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self, lifecycle, video_client) -> None:
        await lifecycle.aclose()
        assert video_client.closed
