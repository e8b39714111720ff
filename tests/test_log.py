# tests/test_log.py
"""
Integration tests for ExpenseClient.log.log
(covers TankHandler, the Qt bridge and the setup helpers).

Run:
    python -m unittest tests.test_log
"""
import logging
import os
from typing import List

from PySide6.QtCore import QtMsgType

from ExpenseClient.log.log import (
    LOG_LEVEL_ENV_KEY,
    TankHandler,
    get_tank,
    level_from_env,
    qt_message_handler,
    set_logging_level,
    setup_logging,
)
from ExpenseClient.signals import signals
from tests.base import BaseTestCase


class LogModuleTests(BaseTestCase):
    """
    Each test starts with a fresh root logger configured by
    setup_logging(enable_stream_handler=False).
    """

    def setUp(self) -> None:
        super().setUp()

        # enable logging
        logging.disable(logging.NOTSET)

        setup_logging(enable_stream_handler=False,
                      enable_qt_handler=False,
                      log_level=logging.DEBUG)

        self.root_logger = logging.getLogger()
        self.tank: TankHandler = get_tank()

    def test_setup_logging_installs_tank_handler_only(self):
        self.assertEqual(
            [type(h) for h in self.root_logger.handlers],
            [TankHandler],
        )

    def test_tank_handler_stores_and_filters(self):
        logging.debug('dbg message')
        logging.error('err message')
        self.assertEqual(len(self.tank.tank), 2)
        errs: List[str] = self.tank.get_logs(logging.ERROR)
        self.assertEqual(len(errs), 1)
        self.assertIn('err message', errs[0])
        self.tank.clear_logs()
        self.assertEqual(len(self.tank.tank), 0)

    def test_tank_filters_by_module(self):
        logging.info('from the test module')
        self.assertEqual(len(self.tank.get_logs(module='test_log')), 1)
        self.assertEqual(self.tank.get_logs(module='sync'), [])

    def test_tank_is_bounded(self):
        tank = TankHandler(max_records=3)
        for i in range(5):
            tank.emit(logging.LogRecord('x', logging.INFO, __file__, 1, f'msg {i}', None, None))
        self.assertEqual(tank.get_logs(), ['msg 2', 'msg 3', 'msg 4'])

    def test_emit_triggers_showLogs_on_error(self):
        triggered: list[bool] = []

        def _slot() -> None:
            triggered.append(True)

        signals.showLogs.connect(_slot)
        try:
            logging.warning('should not emit')
            self.assertFalse(triggered)
            logging.error('should emit signal')
            self.assertTrue(triggered)
        finally:
            signals.showLogs.disconnect(_slot)

    def test_set_logging_level_accepts_valid_levels(self):
        set_logging_level(logging.ERROR)
        self.assertEqual(self.root_logger.level, logging.ERROR)
        for h in self.root_logger.handlers:
            self.assertEqual(h.level, logging.ERROR)

    def test_set_logging_level_rejects_invalid(self):
        for value in ('INFO', 1234, True):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    set_logging_level(value)  # type: ignore[arg-type]

    def test_level_from_env(self):
        os.environ.pop(LOG_LEVEL_ENV_KEY, None)
        self.assertEqual(level_from_env(), logging.DEBUG)
        os.environ[LOG_LEVEL_ENV_KEY] = 'warning'
        self.assertEqual(level_from_env(), logging.WARNING)
        os.environ[LOG_LEVEL_ENV_KEY] = '40'
        self.assertEqual(level_from_env(), logging.ERROR)
        os.environ[LOG_LEVEL_ENV_KEY] = 'chatty'
        self.assertEqual(level_from_env(logging.INFO), logging.INFO)

    def test_setup_logging_reads_level_from_env(self):
        os.environ[LOG_LEVEL_ENV_KEY] = 'INFO'
        setup_logging(enable_stream_handler=False, enable_qt_handler=False)
        self.assertEqual(logging.getLogger().level, logging.INFO)

    def test_qt_message_handler_maps_to_logging(self):
        qt_message_handler(QtMsgType.QtInfoMsg, None, 'Qt info\n')
        qt_message_handler(QtMsgType.QtWarningMsg, None, 'Qt warn')
        msgs = self.tank.get_logs()
        self.assertTrue(any('Qt info' in m for m in msgs))
        self.assertTrue(any('Qt warn' in m for m in msgs))

    def test_qt_message_handler_fatal_exits(self):
        with self.assertRaises(SystemExit):
            qt_message_handler(QtMsgType.QtFatalMsg, None, 'fatal')
