"""LocalMatrix Meta information."""

__title__ = "localmatrix"
__description__ = (
    "Serverless local messaging between agent processes, "
    "using a shared directory as the medium."
)
__version__ = "0.1.0"
__author__ = "LocalMatrix Developers"
__author_email__ = ""
__license__ = "MIT"
__copyright__ = "Copyright (c) 2026 LocalMatrix Developers"
