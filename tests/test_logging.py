"""
Tests for cartsync logging helpers
"""

import logging

from cartsync.logging import PACKAGE_LOGGER, get_logger, sanitize_id_for_logging


class TestGetLogger:

    def test_package_modules_keep_their_name(self):
        assert get_logger("cartsync.cart.engine").name == "cartsync.cart.engine"

    def test_outside_names_nest_under_package(self):
        logger = get_logger("checkout")

        assert logger.name == "cartsync.checkout"
        assert logger.parent is logging.getLogger(PACKAGE_LOGGER)

    def test_cart_events_reach_caplog(self, caplog):
        with caplog.at_level(logging.INFO, logger=PACKAGE_LOGGER):
            get_logger("cartsync.cart.sync").info("Remote cart acknowledged")

        assert "Remote cart acknowledged" in caplog.text


class TestSanitizeId:

    def test_truncates(self):
        assert sanitize_id_for_logging("user-123456789") == "user-123"

    def test_missing_identity(self):
        assert sanitize_id_for_logging(None) == "N/A"

    def test_escapes_newlines(self):
        assert sanitize_id_for_logging("a\nb") == "a\\nb"
