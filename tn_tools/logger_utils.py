# TN-Fedora-Tools/tn_tools/logger_utils.py
import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "TNFedoraTools"
LOG_FILENAME = "tn_fedora_tools.log"
LOG_FILE_ENV = "TN_TOOLS_LOG_FILE"

def default_log_file_path() -> Path:
    """
    Returns the log file path: $TN_TOOLS_LOG_FILE if set, otherwise
    ~/.config/tn-fedora-tools/tn_fedora_tools.log of whoever runs the tool
    (root for the NVIDIA tasks).
    """
    override = os.environ.get(LOG_FILE_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "tn-fedora-tools" / LOG_FILENAME

def setup_logger(
    logger_name: str = LOGGER_NAME,
    log_level: int = logging.INFO,
    log_to_file: bool = True,
    log_file_path: Optional[Path] = None,
    log_to_console: bool = False, # console_output.py handles user messages
    console_log_level: int = logging.WARNING
) -> logging.Logger:
    """
    Configures and returns a logger instance.

    Args:
        logger_name (str): The name for the logger instance.
        log_level (int): The base logging level for the logger and the file handler.
        log_to_file (bool): Whether to enable logging to a file.
        log_file_path (Optional[Path]): Path to the log file. Defaults to
                                        default_log_file_path().
        log_to_console (bool): Whether to also log to stderr via this logger.
        console_log_level (int): The level for the console handler (if enabled).

    Returns:
        logging.Logger: The configured logger instance.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(log_level)

    # Reconfiguring replaces the handlers; modules holding app_logger keep working.
    if logger.hasHandlers():
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s"
    )

    if log_to_file:
        effective_log_file_path = log_file_path or default_log_file_path()

        try:
            effective_log_file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(effective_log_file_path, mode='a', encoding='utf-8')
        except OSError as e:
            # console_output is not used here, it may not be importable yet.
            sys.stderr.write(f"ERROR [logger_utils]: Could not open log file {effective_log_file_path}. File logging disabled. Error: {e}\n")
            log_to_file = False

        if log_to_file:
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
            if logger.isEnabledFor(logging.INFO):
                logger.info(f"File logging initialized to: {effective_log_file_path}")

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(console_log_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    # Avoid the "No handlers could be found" warning when both outputs are off.
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger

# Quiet default so importing the package never creates files.
# Entry points call setup_logger() again to attach the file handler.
app_logger = setup_logger(log_to_file=False)
