import os

import pytest

from gifclip.conversion_pipeline import ConversionPipeline
from gifclip.error_handler import UPLOAD_SUGGESTION
from gifclip.models import ConversionRequest, SourceKind
from conftest import FakeRunner, failed, install_media_tools

CLOCK = 1_700_000_000.0


def make_pipeline(config, runner, **kwargs):
    return ConversionPipeline(config, runner=runner, clock=lambda: CLOCK, **kwargs)


def remote_payload(identifier="abc123", start=10, duration=5):
    return {'sourceKind': 'remote', 'identifier': identifier, 'startTime': start, 'duration': duration}


def upload_payload(name="holiday.mp4", data=b"\x00" * 256, mime="video/mp4", start=0, duration=2):
    return {'sourceKind': 'upload', 'fileBytes': data, 'fileName': name,
            'declaredMimeType': mime, 'startTime': start, 'duration': duration}


def test_remote_request_produces_gif(config, media_runner, storage_root):
    response = make_pipeline(config, media_runner).handle(remote_payload())

    assert response['success'] is True
    assert response['source'] == 'remote'
    assert response['outputUrl'] == '/gifs/abc123_10_5_1700000000000.gif'
    artifact = storage_root / 'public' / 'gifs' / 'abc123_10_5_1700000000000.gif'
    assert response['fileSizeBytes'] == artifact.stat().st_size > 0
    assert media_runner.programs() == ['yt-dlp', 'ffprobe', 'ffprobe', 'ffmpeg']


def test_convert_returns_result_with_tier(config, media_runner):
    result = make_pipeline(config, media_runner).convert(ConversionRequest.remote("https://youtu.be/abc123", 0, 3))

    assert result.source_kind == SourceKind.REMOTE
    assert result.tier == 'baseline'
    assert result.frame_count == 3
    assert result.file_path.exists()


def test_second_request_reuses_cached_download(config, media_runner):
    pipeline = make_pipeline(config, media_runner)

    pipeline.handle(remote_payload(start=0))
    pipeline.handle(remote_payload(start=5))

    assert len(media_runner.calls_to('yt-dlp')) == 1


@pytest.mark.parametrize("start, duration, field", [
    (0, 31, 'duration'),
    (0, 0, 'duration'),
    (-1, 5, 'startTime'),
])
def test_invalid_timing_is_rejected_before_any_work(config, runner, storage_root, start, duration, field):
    response = make_pipeline(config, runner).handle(remote_payload(start=start, duration=duration))

    assert response['error'] == 'InvalidRequest'
    assert field in response['details']
    assert runner.calls == []
    assert not storage_root.exists()


def test_unknown_source_kind_is_invalid_request(config, runner):
    response = make_pipeline(config, runner).handle({'sourceKind': 'ftp', 'startTime': 0, 'duration': 2})

    assert response['error'] == 'InvalidRequest'
    assert 'sourceKind' in response['details']


def test_window_past_end_of_video_is_invalid_request(config, storage_root):
    runner = install_media_tools(FakeRunner(), source_duration=60.0)

    response = make_pipeline(config, runner).handle(remote_payload(start=58, duration=5))

    assert response['error'] == 'InvalidRequest'
    assert 'startTime' in response['details']
    assert 'ffmpeg' not in runner.programs()
    assert not (storage_root / 'public' / 'gifs').exists()


def test_overlong_remote_source_is_source_invalid(config):
    runner = install_media_tools(FakeRunner(), source_duration=900.0)

    response = make_pipeline(config, runner).handle(remote_payload())

    assert response['error'] == 'SourceInvalid'
    assert 'maximum is 600s' in response['message']


def test_rejected_remote_download_is_fetched_again(config, storage_root):
    runner = install_media_tools(FakeRunner(), codec_type='audio')
    pipeline = make_pipeline(config, runner)

    first = pipeline.handle(remote_payload())

    assert first['error'] == 'SourceInvalid'
    assert not (storage_root / 'temp' / 'abc123.mp4').exists()

    install_media_tools(runner)
    second = pipeline.handle(remote_payload())

    assert second['success'] is True
    assert len(runner.calls_to('yt-dlp')) == 2


@pytest.mark.parametrize("payload", [None, ['remote', 'abc123'], "sourceKind=remote"])
def test_non_object_payload_is_invalid_request(config, runner, payload):
    response = make_pipeline(config, runner).handle(payload)

    assert response['error'] == 'InvalidRequest'
    assert runner.calls == []


def test_oversized_integer_duration_is_invalid_request(config, runner):
    response = make_pipeline(config, runner).handle(remote_payload(duration=10 ** 400))

    assert response['error'] == 'InvalidRequest'
    assert response['details'] == {'duration': 'Duration must be a number'}


def test_blocked_remote_suggests_upload(config, runner):
    runner.on('yt-dlp', lambda command: failed("ERROR: [youtube] abc123: Sign in to confirm you're not a bot"))

    response = make_pipeline(config, runner).handle(remote_payload())

    assert response['error'] == 'SourceBlocked'
    assert response['suggestion'] == UPLOAD_SUGGESTION


def test_upload_request_produces_marked_gif(config, media_runner, storage_root):
    response = make_pipeline(config, media_runner).handle(upload_payload(name="Holiday Trip.mp4"))

    assert response['success'] is True
    assert response['source'] == 'upload'
    assert response['outputUrl'] == '/gifs/upload_Holiday_Trip_0_2_1700000000000.gif'
    assert os.listdir(storage_root / 'uploads') == []
    assert 'yt-dlp' not in media_runner.programs()


def test_upload_with_video_extension_but_no_video_stream_is_source_invalid(config, storage_root):
    runner = install_media_tools(FakeRunner(), codec_type='audio')

    response = make_pipeline(config, runner).handle(upload_payload())

    assert response['error'] == 'SourceInvalid'
    assert 'No video streams found' in response['message']
    assert os.listdir(storage_root / 'uploads') == []
    assert 'ffmpeg' not in runner.programs()


def test_rejected_upload_never_touches_disk(config, runner, storage_root):
    response = make_pipeline(config, runner).handle(upload_payload(name="notes.txt", mime="text/plain"))

    assert response['error'] == 'InvalidRequest'
    assert set(response['details']) == {'fileName', 'declaredMimeType'}
    assert not storage_root.exists()


def test_transcode_failure_leaves_no_artifact(config, media_runner, storage_root):
    media_runner.on('ffmpeg', lambda command: failed("Conversion failed!"))

    response = make_pipeline(config, media_runner).handle(remote_payload())

    assert response['error'] == 'ConversionFailed'
    assert os.listdir(storage_root / 'public' / 'gifs') == []


def test_storage_errors_are_internal_io(config, media_runner, monkeypatch):
    pipeline = make_pipeline(config, media_runner)

    def refuse(*args, **kwargs):
        raise PermissionError("read-only file system")

    monkeypatch.setattr(pipeline.store, 'allocate', refuse)

    response = pipeline.handle(remote_payload())

    assert response['error'] == 'InternalIO'
    assert pipeline.error_handler.get_error_summary()['categories'] == {'InternalIO': 1}


def test_each_request_triggers_retention(config, runner):
    class RecordingScheduler:
        triggered = 0

        def trigger(self):
            self.triggered += 1

    scheduler = RecordingScheduler()
    pipeline = make_pipeline(config, runner, retention_scheduler=scheduler)

    pipeline.handle(remote_payload(duration=31))
    pipeline.handle(remote_payload(duration=31))

    assert scheduler.triggered == 2


def test_request_shutdown_cancels_tools(config, media_runner):
    pipeline = make_pipeline(config, media_runner)
    pipeline.request_shutdown()

    response = pipeline.handle(remote_payload())

    assert response['error'] == 'SourceInvalid'
    assert 'cancelled' in response['message']
