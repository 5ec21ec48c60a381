import pytest

from gifclip.utils.formatting import format_file_size, format_time, parse_time


@pytest.mark.parametrize("seconds, text", [(0, '00:00'), (65, '01:05'), (599.9, '09:59'), (-3, '00:00')])
def test_format_time(seconds, text):
    assert format_time(seconds) == text


@pytest.mark.parametrize("text, seconds", [
    ('1:05', 65),
    ('10:00', 600),
    (' 0:30 ', 30),
    ('1:75', None),
    ('1:5', None),
    ('abc', None),
    ('', None),
])
def test_parse_time(text, seconds):
    assert parse_time(text) == seconds


@pytest.mark.parametrize("size, text", [
    (0, '0 Bytes'),
    (512, '512 Bytes'),
    (1536, '1.5 KB'),
    (100 * 1024 * 1024, '100 MB'),
])
def test_format_file_size(size, text):
    assert format_file_size(size) == text
