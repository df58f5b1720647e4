import asyncio
import base64
import threading

import numpy as np
import pytest
from fakes import FakeMicrophone, settle

from tutor_live.backend.component.audio_capture import AudioCapturePipeline
from tutor_live.backend.core.types import AUDIO_MIME_TYPE
from tutor_live.errors import DevicePermissionError, ErrorCode


def _pcm16(samples: np.ndarray) -> bytes:
    return (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2").tobytes()


def test_native_rate_blocks_pass_through_as_base64():
    """Test 16 kHz mono blocks are forwarded unchanged."""
    block = _pcm16(np.linspace(-0.5, 0.5, 160, dtype=np.float32))

    async def scenario():
        microphone = FakeMicrophone()
        pipeline = AudioCapturePipeline(microphone)
        chunks = []
        pipeline.on("data", chunks.append)
        await pipeline.start()
        microphone.devices[0].push(block)
        await settle()
        pipeline.stop()
        return chunks

    chunks = asyncio.run(scenario())

    assert len(chunks) == 1
    assert chunks[0].mime_type == AUDIO_MIME_TYPE
    assert base64.b64decode(chunks[0].data) == block


def test_stereo_48k_is_downmixed_and_resampled():
    """Test non-native devices are converted to 16 kHz mono PCM16."""
    frames = 480
    stereo = np.zeros((frames, 2), dtype=np.float32)
    stereo[:, 0] = 0.25
    stereo[:, 1] = 0.25

    async def scenario():
        microphone = FakeMicrophone(sample_rate=48000, channels=2)
        pipeline = AudioCapturePipeline(microphone)
        chunks = []
        pipeline.on("data", chunks.append)
        await pipeline.start()
        microphone.devices[0].push(_pcm16(stereo.reshape(-1)))
        await settle()
        pipeline.stop()
        return chunks

    chunks = asyncio.run(scenario())

    pcm = base64.b64decode(chunks[0].data)
    assert len(pcm) == 2 * 160


def test_blocks_from_driver_thread_are_delivered_on_the_loop():
    """Test blocks pushed from another thread are marshalled onto the loop."""
    block = _pcm16(np.full(160, 0.1, dtype=np.float32))

    async def scenario():
        microphone = FakeMicrophone()
        pipeline = AudioCapturePipeline(microphone)
        loop_thread = threading.get_ident()
        seen_threads = []
        pipeline.on("data", lambda _chunk: seen_threads.append(threading.get_ident()))
        await pipeline.start()
        worker = threading.Thread(target=microphone.devices[0].push, args=(block,))
        worker.start()
        worker.join()
        await settle()
        pipeline.stop()
        return loop_thread, seen_threads

    loop_thread, seen_threads = asyncio.run(scenario())

    assert seen_threads == [loop_thread]


def test_blocks_after_stop_are_dropped_and_device_released():
    """Test no data is emitted once the pipeline stops."""
    block = _pcm16(np.full(160, 0.1, dtype=np.float32))

    async def scenario():
        microphone = FakeMicrophone()
        pipeline = AudioCapturePipeline(microphone)
        chunks = []
        pipeline.on("data", chunks.append)
        await pipeline.start()
        device = microphone.devices[0]
        device.push(block)
        pipeline.stop()
        device.push(block)
        await settle()
        pipeline.stop()
        return chunks, device, pipeline

    chunks, device, pipeline = asyncio.run(scenario())

    assert chunks == []
    assert device.closed is True
    assert pipeline.running is False


def test_denied_microphone_raises_permission_error():
    """Test a refused request surfaces as DevicePermissionError."""

    async def scenario():
        pipeline = AudioCapturePipeline(FakeMicrophone(deny=True))
        with pytest.raises(DevicePermissionError) as exc_info:
            await pipeline.start()
        return pipeline, exc_info.value

    pipeline, error = asyncio.run(scenario())

    assert error.code == ErrorCode.MIC_PERMISSION_DENIED
    assert pipeline.running is False
    assert pipeline.starting is False


def test_device_open_failure_is_wrapped_as_permission_error():
    """Test arbitrary device errors become DevicePermissionError."""

    async def broken_device():
        raise OSError("no input device")

    async def scenario():
        pipeline = AudioCapturePipeline(broken_device)
        with pytest.raises(DevicePermissionError) as exc_info:
            await pipeline.start()
        return exc_info.value

    error = asyncio.run(scenario())

    assert "no input device" in str(error)


def test_late_grant_after_stop_releases_device_without_capturing():
    """Test a permission grant that arrives after stop() is discarded."""

    async def scenario():
        microphone = FakeMicrophone()
        microphone.gate = asyncio.Event()
        pipeline = AudioCapturePipeline(microphone)
        task = asyncio.get_running_loop().create_task(pipeline.start())
        await settle()
        starting = pipeline.starting
        pipeline.stop()
        microphone.gate.set()
        await task
        return pipeline, microphone, starting

    pipeline, microphone, starting = asyncio.run(scenario())

    assert starting is True
    assert pipeline.running is False
    assert microphone.devices[0].closed is True
    assert microphone.devices[0].callback is None


def test_volume_is_emitted_on_its_own_timer():
    """Test volume ticks report a decaying level in [0, 1]."""
    loud = _pcm16(np.full(160, 0.8, dtype=np.float32))

    async def scenario():
        microphone = FakeMicrophone()
        pipeline = AudioCapturePipeline(microphone, volume_interval_ms=5)
        levels = []
        pipeline.on("volume", levels.append)
        await pipeline.start()
        microphone.devices[0].push(loud)
        await asyncio.sleep(0.05)
        pipeline.stop()
        count = len(levels)
        await asyncio.sleep(0.03)
        return levels, count

    levels, count = asyncio.run(scenario())

    assert count >= 2
    assert len(levels) == count
    assert all(0.0 <= level <= 1.0 for level in levels)
    assert max(levels) == pytest.approx(0.8, abs=0.01)


def test_probe_releases_device_immediately():
    """Test probing checks access without starting capture."""

    async def scenario():
        microphone = FakeMicrophone()
        pipeline = AudioCapturePipeline(microphone)
        await pipeline.probe()
        return pipeline, microphone

    pipeline, microphone = asyncio.run(scenario())

    assert microphone.devices[0].closed is True
    assert pipeline.running is False
