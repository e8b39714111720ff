"""Settings library for the client configuration.

Provides:
    - Schema validation and enforcement for client.json structure.
    - Loading, saving, reverting, and managing client settings.
    - Application paths for the configuration and the local store.
"""

import json
import logging
import os
import pathlib
import shutil
from typing import Dict, Any, Optional, List

from PySide6 import QtCore

from ..status import status

app_name: str = 'ExpenseClient'

API_URL_ENV_KEY: str = 'EXPENSECLIENT_API_URL'

DEFAULT_CATEGORIES: List[str] = [
    'Food',
    'Transport',
    'Shopping',
    'Bills',
    'Entertainment',
    'Healthcare',
    'Education',
    'Other',
]

CLIENT_SCHEMA: Dict[str, Any] = {
    'remote': {
        'type': dict,
        'required': True,
        'item_schema': {
            'base_url': {'type': str, 'required': True},
            'health_path': {'type': str, 'required': True},
            'probe_timeout': {'type': (int, float), 'required': True, 'min': 0.1},
            'request_timeout': {'type': (int, float), 'required': True, 'min': 0.1},
        }
    },
    'sync': {
        'type': dict,
        'required': True,
        'item_schema': {
            'interval_seconds': {'type': int, 'required': True, 'min': 1},
            'auto_sync': {'type': bool, 'required': True},
        }
    },
    'categories': {
        'type': list,
        'required': True,
        'value_type': str,
    },
}


def _validate_items(section_name: str, section: Dict[str, Any], item_schema: Dict[str, Any]) -> None:
    """Validate a dict section against its item schema.

    Args:
        section_name: Name of the section, used in error messages.
        section: The section data.
        item_schema: Dict describing required fields, types and lower bounds.

    Raises:
        ValueError: If a required field is missing or below its minimum.
        TypeError: If a field has the wrong type.
    """
    logging.debug(f'Validating "{section_name}" section.')
    for field, field_specs in item_schema.items():
        if field not in section:
            if field_specs['required']:
                msg: str = f'Section "{section_name}" missing "{field}".'
                logging.error(msg)
                raise ValueError(msg)
            continue

        value = section[field]
        # bool is an int subclass, don't let it pass as a number
        if isinstance(value, bool) and field_specs['type'] is not bool:
            msg = f'Section "{section_name}" field "{field}" must be {field_specs["type"]}, got bool.'
            logging.error(msg)
            raise TypeError(msg)
        if not isinstance(value, field_specs['type']):
            msg = (
                f'Section "{section_name}" field "{field}" must be {field_specs["type"]}, '
                f'got {type(value)}.'
            )
            logging.error(msg)
            raise TypeError(msg)
        if 'min' in field_specs and value < field_specs['min']:
            msg = f'Section "{section_name}" field "{field}" must be >= {field_specs["min"]}, got {value}.'
            logging.error(msg)
            raise ValueError(msg)


def _validate_categories(categories: List[Any]) -> None:
    """Validate the 'categories' section.

    Args:
        categories: List of category labels.

    Raises:
        TypeError: If a label is not a string.
        ValueError: If the list is empty or has duplicate labels.
    """
    logging.debug('Validating "categories" section.')
    if not categories:
        msg: str = '"categories" must not be empty.'
        logging.error(msg)
        raise ValueError(msg)
    for item in categories:
        if not isinstance(item, str) or not item.strip():
            msg = f'Category "{item}" must be a non-empty string.'
            logging.error(msg)
            raise TypeError(msg)
    if len(set(categories)) != len(categories):
        msg = f'"categories" contains duplicates: {categories}.'
        logging.error(msg)
        raise ValueError(msg)


class ConfigPaths:
    """Manage application file paths and ensure the default template and directories exist.

    The configuration lives in the Qt application data directory. On first run the
    bundled template is copied there so a valid client.json always exists.
    """

    def __init__(self) -> None:
        QtCore.QCoreApplication.setApplicationName(app_name)
        QtCore.QCoreApplication.setOrganizationName('')
        logging.debug(f'Setting application name: {app_name}')

        p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.AppDataLocation)
        app_data_dir = pathlib.Path(p)
        logging.debug(f'Using app data directory: {app_data_dir}')

        self.template_dir: pathlib.Path = pathlib.Path(__file__).parent.parent / 'config'
        self.client_template: pathlib.Path = self.template_dir / 'client.json.template'

        self.config_dir: pathlib.Path = app_data_dir / 'config'
        self.db_dir: pathlib.Path = self.config_dir / 'db'

        self.client_config_path: pathlib.Path = self.config_dir / 'client.json'
        self.db_path: pathlib.Path = self.db_dir / 'store.db'

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Verify the template exists and prepare configuration directories and files.

        Raises:
            FileNotFoundError: If the template directory or file is missing.
        """
        logging.debug(f'Verifying required directories and templates in {self.template_dir}')
        if not self.template_dir.exists():
            msg: str = f'Missing template directory: {self.template_dir}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        if not self.client_template.exists():
            msg = f'Missing client template: {self.client_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)

        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

        if not self.db_dir.exists():
            logging.debug(f'Creating db directory: {self.db_dir}')
            self.db_dir.mkdir(parents=True, exist_ok=True)

        if not self.client_config_path.exists():
            logging.debug(f'Copying default client config from template to {self.client_config_path}')
            shutil.copy(self.client_template, self.client_config_path)

    def revert_client_config_to_template(self) -> None:
        """Restore client.json from the default template file.

        Raises:
            FileNotFoundError: If the template file is missing.
        """
        logging.debug(f'Reverting client config to template: {self.client_template}')
        if not self.client_template.exists():
            msg: str = f'Client template not found: {self.client_template}'
            logging.error(msg)
            raise FileNotFoundError(msg)
        shutil.copy(self.client_template, self.client_config_path)


class SettingsAPI(ConfigPaths):
    """
    Provides an interface to get/set/revert/save client.json sections.
    """

    def __init__(self, client_config_path: Optional[str] = None) -> None:
        """Initialize SettingsAPI and load the client configuration.

        Args:
            client_config_path: Optional path to a custom client.json file.
        """
        super().__init__()

        self.client_config_path: pathlib.Path = (
            pathlib.Path(client_config_path)
            if client_config_path
            else self.client_config_path
        )

        self._signals_blocked: bool = False

        self.config_data: Dict[str, Any] = {}
        self.init_data()

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of configuration change signals.

        Args:
            v: True to block signals, False to allow signals to emit.
        """
        self._signals_blocked = v

    @property
    def base_url(self) -> str:
        """Base URL of the expense service, the environment variable taking precedence.

        Returns:
            The base URL without a trailing slash.
        """
        url = os.environ.get(API_URL_ENV_KEY) or self.config_data['remote']['base_url']
        return url.rstrip('/')

    @property
    def categories(self) -> List[str]:
        return list(self.config_data.get('categories') or DEFAULT_CATEGORIES)

    def init_data(self) -> None:
        """Reload the client configuration, emitting change signals."""
        self.load_config()

        if self._signals_blocked:
            return

        from ..signals import signals
        for section in CLIENT_SCHEMA.keys():
            signals.configSectionChanged.emit(section)

    def load_config(self) -> Dict[str, Any]:
        """Load client.json from disk and validate against schema.

        Returns:
            The loaded configuration dictionary.

        Raises:
            status.ClientConfigNotFoundException: If client.json is missing.
            status.ClientConfigInvalidException: If JSON parsing or validation fails.
        """
        logging.debug(f'Loading client config from "{self.client_config_path}"')
        if not self.client_config_path.exists():
            raise status.ClientConfigNotFoundException

        try:
            with self.client_config_path.open('r', encoding='utf-8') as f:
                data: Dict[str, Any] = json.load(f)
            self.validate_config(data)
        except (ValueError, TypeError) as ex:
            raise status.ClientConfigInvalidException(str(ex)) from ex

        self.config_data = data
        return self.config_data

    def validate_config(self, data: Optional[Dict[str, Any]] = None) -> None:
        """Validate configuration data against CLIENT_SCHEMA.

        Args:
            data (dict, optional): Configuration to validate. Defaults to self.config_data.

        Raises:
            ValueError: If data is empty, a required section is missing or a value is out of range.
            TypeError: If a section or value has the wrong type.
        """
        if data is None:
            data = self.config_data
        if not data:
            raise ValueError('Client config is empty.')

        logging.debug('Validating client config against schema.')
        for field, specs in CLIENT_SCHEMA.items():
            if specs.get('required') and field not in data:
                raise ValueError(f'Missing required field: {field}')

            if field not in data:
                continue

            if not isinstance(data[field], specs['type']):
                raise TypeError(f'Field "{field}" must be {specs["type"]}, got {type(data[field])}.')

            if 'item_schema' in specs:
                _validate_items(field, data[field], specs['item_schema'])
            elif field == 'categories':
                _validate_categories(data[field])

        logging.debug('Client config is valid.')

    def get_section(self, section_name: str) -> Any:
        """Retrieve a copy of a configuration section.

        Args:
            section_name: Section name, a key of CLIENT_SCHEMA.

        Returns:
            A copy of the requested section data.

        Raises:
            KeyError: If section_name is not in the configuration.
        """
        return self.config_data[section_name].copy()

    def set_section(self, section_name: str, new_data: Any) -> None:
        """Replace, validate and persist a configuration section.

        Args:
            section_name: Section to replace.
            new_data: New section data.

        Raises:
            ValueError: If section_name is unknown or the data fails validation.
            TypeError: If the data has the wrong type.
        """
        if section_name not in CLIENT_SCHEMA:
            msg: str = f'Unknown section_name for set: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        candidate: Dict[str, Any] = dict(self.config_data)
        candidate[section_name] = new_data
        self.validate_config(candidate)

        self.config_data = candidate
        self.save_section(section_name)

        if self._signals_blocked:
            return

        from ..signals import signals
        signals.configSectionChanged.emit(section_name)

    def revert_section(self, section_name: str) -> None:
        """Revert a configuration section to its template default and save.

        Args:
            section_name: Section to revert.

        Raises:
            ValueError: If section_name is invalid or not present in the template.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for revert: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.client_template.open('r', encoding='utf-8') as f:
            template_data: Dict[str, Any] = json.load(f)

        if section_name not in template_data:
            msg = f'No template-based revert logic for section "{section_name}".'
            logging.error(msg)
            raise ValueError(msg)

        self.set_section(section_name, template_data[section_name])

    def save_section(self, section_name: str) -> None:
        """Persist a single configuration section to client.json.

        Args:
            section_name: The section to save.

        Raises:
            ValueError: If section_name is not recognized.
        """
        if section_name not in self.config_data:
            msg: str = f'Unknown section_name for save: "{section_name}"'
            logging.error(msg)
            raise ValueError(msg)

        with self.client_config_path.open('r', encoding='utf-8') as f:
            original_data: Dict[str, Any] = json.load(f)

        new_data: Dict[str, Any] = original_data.copy()
        new_data[section_name] = self.config_data[section_name]

        logging.debug(f'Saving section "{section_name}" to "{self.client_config_path}"')
        with self.client_config_path.open('w', encoding='utf-8') as f:
            json.dump(new_data, f, indent=4, ensure_ascii=False)


settings: SettingsAPI = SettingsAPI()
