"""
File Manager for Dust Fetch
Executable detection inside game folders.
"""

import logging
import os
import platform
import stat
from typing import List, Optional

from ..config.app_config import AppConfig
from .logger_config import setup_logger

NON_EXECUTABLE_EXTENSIONS = ['.txt', '.log', '.ini', '.cfg', '.dat', '.json', '.xml']
PRIORITY_NAMES = ['game', 'main', 'start', 'launcher', 'play']


class FileManager:
    """Finds executables in game directories"""

    def __init__(self, logger: Optional[logging.Logger] = None,
                 max_depth: int = AppConfig.MAX_EXECUTABLE_SCAN_DEPTH):
        self.logger = logger or setup_logger('FileManager', 'file_manager.log')
        self.max_depth = max_depth
        self.system = platform.system().lower()

        extensions = list(AppConfig.EXECUTABLE_EXTENSIONS['all'])
        if self.system == 'windows':
            extensions.extend(AppConfig.EXECUTABLE_EXTENSIONS['windows'])
        elif self.system == 'darwin':
            extensions.extend(AppConfig.EXECUTABLE_EXTENSIONS['mac'])
        else:
            extensions.extend(AppConfig.EXECUTABLE_EXTENSIONS['unix'])
        self.extensions = [ext.lower() for ext in extensions]

    def is_executable_file(self, file_path: str) -> bool:
        """
        Check if a file looks like something a user would launch

        Args:
            file_path (str): Path to file

        Returns:
            bool: True for known executable extensions, or the exec bit on Unix
        """
        name = os.path.basename(file_path).lower()
        if any(name.endswith(ext) for ext in self.extensions):
            return True

        if self.system == 'windows':
            return False
        if any(name.endswith(ext) for ext in NON_EXECUTABLE_EXTENSIONS):
            return False

        try:
            return bool(os.stat(file_path).st_mode & stat.S_IEXEC)
        except OSError:
            return False

    def find_executables(self, directory: str) -> List[str]:
        """
        Find executable files in a directory

        Args:
            directory (str): Directory to search

        Returns:
            List[str]: Executable paths relative to the directory, likely launchers first
        """
        executables = []

        if not os.path.isdir(directory):
            self.logger.warning(f"Directory does not exist: {directory}")
            return executables

        base_depth = directory.rstrip(os.sep).count(os.sep)

        for root, dirs, files in os.walk(directory):
            if root.rstrip(os.sep).count(os.sep) - base_depth >= self.max_depth:
                dirs[:] = []

            for file in files:
                file_path = os.path.join(root, file)
                if self.is_executable_file(file_path):
                    executables.append(os.path.relpath(file_path, directory))

        def executable_priority(path: str) -> int:
            filename = os.path.basename(path).lower()
            for i, priority_name in enumerate(PRIORITY_NAMES):
                if priority_name in filename:
                    return i
            return len(PRIORITY_NAMES)

        executables.sort(key=executable_priority)

        self.logger.debug(f"Found {len(executables)} executables in {directory}")
        return executables
