"""Custom exceptions for the publishing context."""

from typing import List, Optional


class PublishError(Exception):
    """
    Exception raised when the PDF cannot be published.

    Attributes:
        message: Error description
        command: The git command that failed (if any)
        stderr: Output git wrote to stderr
    """

    def __init__(
        self,
        message: str,
        command: Optional[List[str]] = None,
        stderr: Optional[str] = None,
    ):
        self.message = message
        self.command = command
        self.stderr = stderr

        parts = [message]
        if command:
            parts.append(f"\nCommand: {' '.join(command)}")
        if stderr:
            parts.append(f"\nGit output:\n{stderr.strip()}")

        super().__init__("\n".join(parts))
