# tests/test_settings.py
"""
Unit tests for ExpenseClient.settings.lib
(covers validators, ConfigPaths and SettingsAPI).

Run with:
    python -m unittest tests.test_settings
"""
import json
import os
import unittest
from typing import Any, Dict, List

from ExpenseClient.settings import lib
from ExpenseClient.settings.lib import (
    CLIENT_SCHEMA,
    DEFAULT_CATEGORIES,
    _validate_categories,
    _validate_items,
)
from ExpenseClient.signals import signals
from ExpenseClient.status import status
from tests.base import BaseTestCase


def minimal_config() -> Dict[str, Any]:
    return {
        'remote': {
            'base_url': 'http://localhost:5000/api',
            'health_path': '/health',
            'probe_timeout': 5.0,
            'request_timeout': 10.0,
        },
        'sync': {'interval_seconds': 30, 'auto_sync': True},
        'categories': list(DEFAULT_CATEGORIES),
    }


class ValidatorTests(unittest.TestCase):

    def test_remote_section_good(self):
        _validate_items('remote', minimal_config()['remote'], CLIENT_SCHEMA['remote']['item_schema'])

    def test_missing_field(self):
        section = minimal_config()['remote']
        del section['health_path']
        with self.assertRaises(ValueError):
            _validate_items('remote', section, CLIENT_SCHEMA['remote']['item_schema'])

    def test_wrong_type(self):
        section = minimal_config()['sync']
        section['interval_seconds'] = '30'
        with self.assertRaises(TypeError):
            _validate_items('sync', section, CLIENT_SCHEMA['sync']['item_schema'])

    def test_bool_is_not_a_number(self):
        section = minimal_config()['remote']
        section['probe_timeout'] = True
        with self.assertRaises(TypeError):
            _validate_items('remote', section, CLIENT_SCHEMA['remote']['item_schema'])

    def test_below_minimum(self):
        section = minimal_config()['sync']
        section['interval_seconds'] = 0
        with self.assertRaises(ValueError):
            _validate_items('sync', section, CLIENT_SCHEMA['sync']['item_schema'])

    def test_categories(self):
        _validate_categories(list(DEFAULT_CATEGORIES))
        with self.assertRaises(ValueError):
            _validate_categories([])
        with self.assertRaises(ValueError):
            _validate_categories(['Food', 'Food'])
        with self.assertRaises(TypeError):
            _validate_categories(['Food', 3])
        with self.assertRaises(TypeError):
            _validate_categories(['Food', '  '])


class RealTemplateSmokeTest(BaseTestCase):

    def test_template_exists_and_is_valid(self):
        self.assertTrue(self.config_paths.client_template.exists())
        with self.config_paths.client_template.open('r', encoding='utf-8') as f:
            data = json.load(f)
        lib.settings.validate_config(data)
        self.assertEqual(data['categories'], DEFAULT_CATEGORIES)

    def test_first_run_copies_template(self):
        self.assertTrue(lib.settings.client_config_path.exists())
        self.assertTrue(self.config_paths.db_dir.exists())
        self.assertEqual(lib.settings.db_path.name, 'store.db')


class SettingsAPIBehaviour(BaseTestCase):

    def test_sections_loaded(self):
        self.assertEqual(lib.settings.get_section('sync'), {'interval_seconds': 30, 'auto_sync': True})
        self.assertEqual(lib.settings.categories, DEFAULT_CATEGORIES)
        self.assertEqual(lib.settings.base_url, 'http://localhost:5000/api')

    def test_get_section_returns_a_copy(self):
        section = lib.settings.get_section('remote')
        section['base_url'] = 'http://elsewhere'
        self.assertEqual(lib.settings.get_section('remote')['base_url'], 'http://localhost:5000/api')

    def test_unknown_section(self):
        with self.assertRaises(KeyError):
            lib.settings.get_section('nope')
        with self.assertRaises(ValueError):
            lib.settings.set_section('nope', {})
        with self.assertRaises(ValueError):
            lib.settings.save_section('nope')

    def test_set_section_persists_and_signals(self):
        changed: List[str] = []

        def _slot(section: str) -> None:
            changed.append(section)

        signals.configSectionChanged.connect(_slot)
        try:
            lib.settings.set_section('categories', ['Food', 'Rent'])
        finally:
            signals.configSectionChanged.disconnect(_slot)

        self.assertEqual(changed, ['categories'])
        with lib.settings.client_config_path.open('r', encoding='utf-8') as f:
            self.assertEqual(json.load(f)['categories'], ['Food', 'Rent'])
        self.assertEqual(lib.SettingsAPI().categories, ['Food', 'Rent'])

    def test_set_section_invalid_value_rollback(self):
        with self.assertRaises(ValueError):
            lib.settings.set_section('sync', {'interval_seconds': 0, 'auto_sync': True})
        self.assertEqual(lib.settings.get_section('sync')['interval_seconds'], 30)

    def test_block_signals(self):
        changed: List[str] = []

        def _slot(section: str) -> None:
            changed.append(section)

        signals.configSectionChanged.connect(_slot)
        lib.settings.block_signals(True)
        try:
            lib.settings.set_section('categories', ['Food'])
        finally:
            lib.settings.block_signals(False)
            signals.configSectionChanged.disconnect(_slot)
        self.assertEqual(changed, [])

    def test_revert_section(self):
        lib.settings.set_section('sync', {'interval_seconds': 5, 'auto_sync': False})
        lib.settings.revert_section('sync')
        self.assertEqual(lib.settings.get_section('sync'), {'interval_seconds': 30, 'auto_sync': True})

    def test_environment_overrides_base_url(self):
        os.environ[lib.API_URL_ENV_KEY] = 'https://api.example.com/'
        self.assertEqual(lib.settings.base_url, 'https://api.example.com')

    def test_invalid_json_raises(self):
        lib.settings.client_config_path.write_text('{broken', encoding='utf-8')
        with self.assertRaises(status.ClientConfigInvalidException):
            lib.settings.load_config()

    def test_invalid_config_raises(self):
        config = minimal_config()
        del config['sync']
        lib.settings.client_config_path.write_text(json.dumps(config), encoding='utf-8')
        with self.assertRaises(status.ClientConfigInvalidException):
            lib.settings.load_config()

    def test_missing_config_raises(self):
        lib.settings.client_config_path.unlink()
        with self.assertRaises(status.ClientConfigNotFoundException):
            lib.settings.load_config()

    def test_revert_client_config_to_template(self):
        lib.settings.client_config_path.write_text('{broken', encoding='utf-8')
        lib.settings.revert_client_config_to_template()
        self.assertEqual(lib.settings.load_config()['sync']['interval_seconds'], 30)


if __name__ == '__main__':
    unittest.main()
