# TN-Fedora-Tools/tn_tools/phase_manager.py

import sys
from typing import Callable, List, Sequence, Tuple

from tn_tools import console_output as con
from tn_tools.config_loader import Settings, load_settings
from tn_tools.logger_utils import app_logger, setup_logger

Step = Tuple[str, Callable[[], bool]]


def run_steps(steps: Sequence[Step]) -> List[str]:
    """
    Runs each step in order, whatever happened to the previous ones.
    A step fails by returning False or raising; returns the failed step names.
    """
    failed: List[str] = []
    for name, step in steps:
        app_logger.info(f"Step started: {name}")
        try:
            ok = step()
        except Exception as e:
            con.print_error(f"Unexpected error during '{name}': {e}. Continuing with the next step.")
            app_logger.error(f"Step '{name}' raised: {e}", exc_info=True)
            ok = False
        if ok is False:
            app_logger.warning(f"Step did not complete: {name}")
            failed.append(name)
        else:
            app_logger.info(f"Step finished: {name}")
    return failed


def run_task(task_name: str, handler: Callable[[Settings], bool]) -> None:
    """
    Console-script wrapper shared by the three tasks: configures file logging,
    loads the settings and runs the handler. Soft failures still exit 0;
    preconditions exit 1 from inside the handler, Ctrl-C exits 130.
    """
    setup_logger()
    app_logger.info(f"{task_name} started.")
    try:
        handler(load_settings())
    except KeyboardInterrupt:
        con.print_info("\nOperation cancelled by user. Exiting.")
        app_logger.info(f"{task_name} cancelled by user.")
        sys.exit(130)
    finally:
        app_logger.info(f"{task_name} finished.")
