"""
Unit tests for configuration loading, CLI overrides and validation
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path

import yaml

from gifclip.config_manager import ConfigManager, get_packaged_config_dir
from gifclip.gif_processing.gif_config import GifConfigHelper


class TestConfigManager(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_packaged_defaults_are_loaded(self):
        config = ConfigManager()

        self.assertEqual(config.get('gif_settings.fps'), 15)
        self.assertEqual(config.get('gif_settings.width'), 480)
        self.assertEqual(config.get('pipeline.limits.max_duration_seconds'), 30)
        self.assertEqual(config.get('pipeline.limits.max_upload_bytes'), 100 * 1024 * 1024)
        self.assertIn('3gp', config.get('pipeline.limits.allowed_extensions'))
        self.assertIsNotNone(config.get('logging.handlers.console'))
        self.assertEqual(len(config.loaded_files), 3)

    def test_missing_key_returns_default(self):
        config = ConfigManager()
        self.assertEqual(config.get('pipeline.no.such.key', 'fallback'), 'fallback')

    def test_explicit_config_dir_overrides_file_and_falls_back_for_others(self):
        with open(os.path.join(self.temp_dir, 'gif_settings.yaml'), 'w') as f:
            yaml.dump({'gif_settings': {'fps': 10, 'width': 320}}, f)

        config = ConfigManager(self.temp_dir)

        self.assertEqual(config.get('gif_settings.fps'), 10)
        self.assertEqual(config.get('pipeline.limits.max_duration_seconds'), 30)
        self.assertIn(os.path.join(get_packaged_config_dir(), 'pipeline.yaml'), config.loaded_files)

    def test_update_from_args_skips_none(self):
        config = ConfigManager()
        config.update_from_args({'pipeline.storage_root': '/srv/gifclip', 'gif_settings.fps': None})

        self.assertEqual(config.get('pipeline.storage_root'), '/srv/gifclip')
        self.assertEqual(config.get('gif_settings.fps'), 15)

    def test_storage_dirs_resolve_against_root(self):
        config = ConfigManager()
        config.update_from_args({'pipeline.storage_root': self.temp_dir})

        self.assertEqual(config.resolve_storage_dir('upload_dir', 'uploads'), Path(self.temp_dir) / 'uploads')
        self.assertEqual(config.get_temp_dir(), Path(self.temp_dir) / 'scratch')

        absolute = os.path.join(self.temp_dir, 'elsewhere')
        config.update_from_args({'pipeline.cache_dir': absolute})
        self.assertEqual(config.resolve_storage_dir('cache_dir', 'temp'), Path(absolute))

    def test_defaults_validate(self):
        self.assertTrue(ConfigManager().validate_config())

    def test_validation_rejects_inverted_duration_bounds(self):
        config = ConfigManager()
        config.update_from_args({'pipeline.limits.min_duration_seconds': 40})
        self.assertFalse(config.validate_config())

    def test_validation_rejects_non_positive_values(self):
        config = ConfigManager()
        config.update_from_args({'gif_settings.fps': 0})
        self.assertFalse(config.validate_config())

        config = ConfigManager()
        config.update_from_args({'pipeline.retention.cache_max_age_seconds': 'soon'})
        self.assertFalse(config.validate_config())

    def test_validation_rejects_out_of_range_quality(self):
        config = ConfigManager()
        config.update_from_args({'gif_settings.gifski.quality': 150})
        self.assertFalse(config.validate_config())


def test_gif_config_helper_defaults():
    settings = GifConfigHelper(ConfigManager()).get_render_settings()

    assert settings['fps'] == 15
    assert settings['width'] == 480
    assert settings['scale_flags'] == 'lanczos'
    assert settings['palette'] == {'max_colors': 256, 'stats_mode': 'diff', 'dither': 'bayer', 'bayer_scale': 5}
    assert settings['ffmpeg_binary'] == 'ffmpeg'


def test_gif_config_helper_clamps_palette_and_quality():
    config = ConfigManager()
    config.update_from_args({'gif_settings.palette.max_colors': 999, 'gif_settings.gifski.quality': 0})
    helper = GifConfigHelper(config)

    assert helper.get_render_settings()['palette']['max_colors'] == 256
    assert helper.get_optimizer_settings()['quality'] == 1
