"""
Runs external dump/listing tools.
"""
import subprocess
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from loguru import logger


@dataclass(frozen=True)
class ProcessResult:
    exit_code: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def mask_secrets(args: Sequence[str], secrets: Iterable[str]) -> str:
    """
    Render an argument list for logging with all secrets replaced.
    :param args: argument list
    :param secrets: values to hide
    :return: printable command line
    """
    secrets = [s for s in secrets if s]
    rendered = []
    for arg in args:
        for secret in secrets:
            arg = arg.replace(secret, '****')
        rendered.append(arg)
    return ' '.join(rendered)


class ProcessRunner:
    """
    Executes a command with a discrete argument list. Never goes through a shell.
    """

    def run(self, command: str, args: Sequence[str],
            timeout: Optional[float] = None,
            secrets: Iterable[str] = ()) -> ProcessResult:
        """
        Run the command and wait for it.
        :param command: executable name or path
        :param args: arguments, each passed as its own argv entry
        :param timeout: seconds until the process is killed
        :param secrets: values to mask in the debug log
        :return: exit code and captured output
        :raises subprocess.TimeoutExpired: on timeout
        :raises FileNotFoundError: if the executable does not exist
        """
        argv = [command, *args]
        logger.debug(f'Running: {mask_secrets(argv, secrets)}')
        completed = subprocess.run(
            argv,
            shell=False,
            capture_output=True,
            # undecodable bytes become U+FFFD instead of raising
            encoding='utf-8',
            errors='replace',
            timeout=timeout,
            check=False,
        )
        return ProcessResult(exit_code=completed.returncode,
                             stdout=completed.stdout or '',
                             stderr=completed.stderr or '')
