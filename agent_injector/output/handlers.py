"""
Output handlers for different destination types.
"""

from abc import ABC, abstractmethod


class OutputHandler(ABC):
    """Base class for output handlers."""

    @abstractmethod
    def output(self, content: str, **kwargs):
        """Write formatted content."""
        pass


class StdoutHandler(OutputHandler):
    """Output to stdout."""

    def output(self, content: str, **kwargs):
        print(content, end='' if content.endswith('\n') else '\n')


class FileHandler(OutputHandler):
    """Output to filesystem."""

    def __init__(self, file_path: str, append: bool = False):
        self.file_path = file_path
        self.append = append

    def output(self, content: str, **kwargs):
        with open(self.file_path, 'a' if self.append else 'w') as f:
            f.write(content)


def create_output_handler(file_path: str = '') -> OutputHandler:
    """Stdout unless a file path is given."""
    if file_path:
        return FileHandler(file_path)
    return StdoutHandler()
