import os

import pytest

from gifclip.ffmpeg_utils import FFmpegUtils


def test_segment_input_args_seek_before_input():
    args = FFmpegUtils.segment_input_args('clip.mp4', 10, 2.5)
    assert args == ['-ss', '10.000', '-t', '2.500', '-i', os.path.abspath('clip.mp4')]


def test_scale_chain_never_upscales():
    assert FFmpegUtils.build_scale_chain(15, 480) == "fps=15,scale='min(480,iw)':-1:flags=lanczos"


def test_palette_graph_without_bayer_dither():
    graph = FFmpegUtils.build_palette_graph('fps=10', {'max_colors': 64, 'stats_mode': 'full', 'dither': 'none'})
    assert graph == 'fps=10,split[s0][s1];[s0]palettegen=max_colors=64:stats_mode=full[p];[s1][p]paletteuse=dither=none'


def test_perf_flags_are_prepended_once():
    args = FFmpegUtils.add_ffmpeg_perf_flags(['-threads', '1', '-i', 'in.mp4'])

    assert args[:4] == ['-hide_banner', '-loglevel', 'error', '-nostdin']
    assert args.count('-threads') == 1
    assert '-filter_threads' in args
    assert args[-2:] == ['-i', 'in.mp4']


@pytest.mark.parametrize("line, seconds", [
    ('out_time=00:00:02.500000', 2.5),
    ('out_time=01:02:03.000000', 3723.0),
    ('out_time=N/A', None),
    ('frame=12', None),
])
def test_parse_progress_time(line, seconds):
    assert FFmpegUtils.parse_progress_time(line) == seconds


@pytest.mark.parametrize("text, seconds", [
    ('60.023000\n', 60.023),
    ('N/A\n', None),
    ('', None),
    ('garbage', None),
])
def test_parse_duration(text, seconds):
    assert FFmpegUtils.parse_duration(text) == seconds
