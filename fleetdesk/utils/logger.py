import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _drop_previous_handlers(logger):
    # create_app can run many times in one process (tests)
    for handler in [h for h in logger.handlers if getattr(h, "fleetdesk_handler", False)]:
        logger.removeHandler(handler)
        handler.close()


def setup_logging(app):
    try:
        log_file_path = app.config.get("LOG_FILE") or os.path.join(
            os.path.dirname(__file__), '../..', 'fleetdesk.log'
        )
        log_file_path = os.path.abspath(log_file_path)

        # File handler
        file_handler = RotatingFileHandler(log_file_path, maxBytes=1_000_000, backupCount=3)
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))

        # app.logger is the "fleetdesk" logger; service modules propagate into it
        _drop_previous_handlers(app.logger)
        for handler in (file_handler, console_handler):
            handler.fleetdesk_handler = True
            app.logger.addHandler(handler)
        app.logger.setLevel(logging.INFO)

        app.logger.info("Logging setup complete")
    except OSError as e:
        print(f"Error setting up logging: {e}")
