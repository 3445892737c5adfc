# TN-Fedora-Tools/tn_tools/phases/__init__.py

from . import install_nvidia
from . import uninstall_nvidia
from . import update_all
