# TN-Fedora-Tools/tn_tools/__main__.py

from tn_tools.main_menu import main

if __name__ == "__main__":
    main()
