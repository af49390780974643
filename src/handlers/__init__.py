"""
Command handlers, one per action.
"""

from .base import CommandHandler
from .delete import DeleteHandler
from .download import DownloadHandler
from .info import InfoHandler
from .list_files import ListFilesHandler
from .mkdir import MkdirHandler
from .ping import PingHandler
from .rename import RenameHandler
from .upload import UploadHandler

__all__ = [
    "CommandHandler",
    "DeleteHandler",
    "DownloadHandler",
    "InfoHandler",
    "ListFilesHandler",
    "MkdirHandler",
    "PingHandler",
    "RenameHandler",
    "UploadHandler",
]
