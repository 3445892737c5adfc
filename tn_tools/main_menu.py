# TN-Fedora-Tools/tn_tools/main_menu.py

import sys
from typing import Dict

from tn_tools import console_output as con
from tn_tools import system_utils
from tn_tools.config_loader import Settings, load_settings
from tn_tools.logger_utils import app_logger, setup_logger
from tn_tools.phases import install_nvidia, uninstall_nvidia, update_all

TASKS = {
    "update_all": {
        "name": "Update everything 🔄",
        "description": "DNF, Flatpak, Snap, pip, cargo and npm updates, then NVIDIA module re-signing under Secure Boot.",
        "handler": update_all.run,
        "confirm": False,
        "needs_root": False,
    },
    "install_nvidia": {
        "name": "Install NVIDIA driver 🎮",
        "description": "RPM Fusion akmod-nvidia stack, Nouveau blacklist, kernel arguments, Secure Boot MOK. Needs root.",
        "handler": install_nvidia.run,
        "confirm": True,
        "needs_root": True,
    },
    "uninstall_nvidia": {
        "name": "Revert to Nouveau 🧹",
        "description": "Removes the NVIDIA packages, blacklist and kernel arguments. Needs root.",
        "handler": uninstall_nvidia.run,
        "confirm": True,
        "needs_root": True,
    },
}


def display_main_menu() -> Dict[str, str]:
    """Displays the task menu. Returns the menu number -> task id mapping."""
    con.print_step("TN Fedora Tools - Main Menu", char="*")
    con.print_info("Select a task to run, or 'q' to quit.")
    con.print_rule()

    menu_items: Dict[str, str] = {}
    for number, (task_id, task_info) in enumerate(TASKS.items(), start=1):
        con.console.print(f"{number}. [bold]{task_info['name']}[/]")
        con.console.print(f"   [dim]{task_info['description']}[/]")
        menu_items[str(number)] = task_id

    con.print_rule()
    con.console.print(" q. Quit")
    return menu_items


def main_menu_handler(settings: Settings):
    """Handles the main menu interaction loop."""
    while True:
        menu_options = display_main_menu()
        valid_choices = list(menu_options.keys()) + ['q', 'Q']

        choice = con.ask_question("Enter your choice:", choices=valid_choices).lower()
        if choice == 'q':
            con.print_info("Exiting TN Fedora Tools. Bye!")
            break

        task_id = menu_options[choice]
        task_info = TASKS[task_id]
        if task_info["needs_root"] and not system_utils.is_root():
            con.print_warning(f"'{task_info['name']}' needs root. Restart the menu with sudo to run it.")
            continue
        if task_info["confirm"] and not con.confirm_action(f"Run '{task_info['name']}' now?", default=False):
            continue

        app_logger.info(f"Menu: running task '{task_id}'.")
        if not task_info["handler"](settings):
            con.print_warning(f"'{task_info['name']}' finished with some steps skipped over.")

        if not con.confirm_action("Return to main menu?", default=True):
            con.print_info("Exiting TN Fedora Tools. Bye!")
            break


def main():
    """Entry point for `python -m tn_tools` and the tn-tools console script."""
    setup_logger()
    app_logger.info("TN Fedora Tools menu started.")
    try:
        main_menu_handler(load_settings())
    except KeyboardInterrupt:
        con.print_info("\nOperation cancelled by user. Exiting.")
        sys.exit(130)
    finally:
        app_logger.info("TN Fedora Tools menu finished.")


if __name__ == "__main__":
    main()
