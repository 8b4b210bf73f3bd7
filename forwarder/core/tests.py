"""
Tests for configuration loading and validation.
"""
import argparse
import json
import logging
import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from .config import AdapterConfig, load_settings, parse_duration
from .errors import ConfigError


def valid_config(**overrides) -> AdapterConfig:
    values = dict(url='https://pipeline.qiniu.com', repo='monitor', ak='AK', sk='SK')
    values.update(overrides)
    return AdapterConfig(**values)


class TestParseDuration(unittest.TestCase):
    """Test cases for duration strings."""

    def test_units(self):
        self.assertEqual(parse_duration('5s'), 5.0)
        self.assertEqual(parse_duration('500ms'), 0.5)
        self.assertEqual(parse_duration('2m'), 120.0)
        self.assertEqual(parse_duration('1h'), 3600.0)

    def test_bare_number_is_seconds(self):
        self.assertEqual(parse_duration('7'), 7.0)
        self.assertEqual(parse_duration(3), 3.0)

    def test_zero_disables_deadline(self):
        self.assertIsNone(parse_duration('0s'))
        self.assertIsNone(parse_duration(0))

    def test_invalid(self):
        for value in ('five seconds', '5 parsecs', '-1s', True):
            with self.assertRaises(ConfigError):
                parse_duration(value)


class TestAdapterConfig(unittest.TestCase):
    """Test cases for AdapterConfig validation."""

    def test_defaults(self):
        config = AdapterConfig()
        self.assertEqual(config.timeout, '5s')
        self.assertEqual(config.timeout_seconds, 5.0)
        self.assertFalse(config.auto_create_repo)
        self.assertFalse(config.auto_create_series)
        self.assertEqual(config.region, 'nb')

    def test_valid(self):
        valid_config().validate()

    def test_non_http_scheme_rejected(self):
        """Any scheme other than http(s) fails, whatever the host."""
        for url in ('htt://foobar:8089', 'udp://localhost:8089', 'ftp://127.0.0.1', 'localhost:8086'):
            with self.assertRaises(ConfigError):
                valid_config(url=url).validate()

    def test_missing_required(self):
        for name in ('repo', 'ak', 'sk'):
            with self.assertRaises(ConfigError):
                valid_config(**{name: ''}).validate()

    def test_retention_policy(self):
        for good in ('1d', '7d', '30d'):
            valid_config(retention_policy=good).validate()
        for bad in ('0d', '31d', '7', '7h', 'd'):
            with self.assertRaises(ConfigError):
                valid_config(retention_policy=bad).validate()

    def test_bool_strings(self):
        config = valid_config(auto_create_repo='true', auto_create_series='no')
        self.assertTrue(config.auto_create_repo)
        self.assertFalse(config.auto_create_series)

    def test_from_dict_ignores_unknown_keys(self):
        config = AdapterConfig.from_dict({'url': 'http://x', 'repo': 'r', 'bogus': 1})
        self.assertEqual(config.repo, 'r')

    def test_from_args_overrides_settings(self):
        args = argparse.Namespace(url=None, repo='cli_repo', ak=None, sk=None, retention_policy=None,
                                  timeout='1s', tsdb_url=None, metrics_port=None, auto_create=True)
        config = AdapterConfig.from_args(args, {'url': 'http://file', 'repo': 'file_repo', 'ak': 'a', 'sk': 's'})
        self.assertEqual(config.url, 'http://file')
        self.assertEqual(config.repo, 'cli_repo')
        self.assertEqual(config.timeout, '1s')
        self.assertTrue(config.auto_create_repo)
        self.assertTrue(config.auto_create_series)

    def test_to_dict_redacts_secret(self):
        self.assertEqual(valid_config().to_dict()['sk'], '[REDACTED]')


class TestLoadSettings(unittest.TestCase):
    """Test cases for file and environment settings."""

    def setUp(self):
        self.temp_dir = TemporaryDirectory()
        self.temp_path = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_yaml(self):
        path = self.temp_path / 'pandora.yaml'
        path.write_text('url: "https://pipeline.qiniu.com"\nrepo: monitor\nauto_create_repo: true\n', encoding='utf-8')
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(str(path))
        self.assertEqual(settings['repo'], 'monitor')
        self.assertIs(settings['auto_create_repo'], True)

    def test_json(self):
        path = self.temp_path / 'pandora.json'
        path.write_text(json.dumps({'repo': 'monitor', 'timeout': '10s'}), encoding='utf-8')
        with mock.patch.dict(os.environ, {}, clear=True):
            settings = load_settings(str(path))
        self.assertEqual(settings, {'repo': 'monitor', 'timeout': '10s'})

    def test_env_wins_over_file(self):
        path = self.temp_path / 'pandora.yml'
        path.write_text('repo: from_file\nak: file_ak\n', encoding='utf-8')
        with mock.patch.dict(os.environ, {'PANDORA_REPO': 'from_env'}, clear=True):
            settings = load_settings(str(path))
        self.assertEqual(settings['repo'], 'from_env')
        self.assertEqual(settings['ak'], 'file_ak')

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_settings(str(self.temp_path / 'nope.yaml'))

    def test_unsupported_format(self):
        path = self.temp_path / 'pandora.toml'
        path.write_text('repo = "x"\n', encoding='utf-8')
        with self.assertRaises(ConfigError):
            load_settings(str(path))

    def test_invalid_yaml(self):
        path = self.temp_path / 'broken.yaml'
        path.write_text('repo: [unclosed\n', encoding='utf-8')
        with self.assertRaises(ConfigError):
            load_settings(str(path))


if __name__ == '__main__':
    logging.basicConfig(level=logging.ERROR)
    unittest.main()
