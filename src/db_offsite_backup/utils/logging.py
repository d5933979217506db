import os
import sys
from pathlib import Path

from loguru import logger

FORMAT_STRING = '{time:HH:mm:ss} | {level} | {message}'


def setup_console(verbose: bool = False):
    logger.remove()
    logger.add(sys.stderr, format=FORMAT_STRING, level='DEBUG' if verbose else 'INFO')


def setup_logging(log_dir: Path, log_level: str):
    if not os.path.isdir(log_dir):
        os.makedirs(log_dir, exist_ok=True)
    logger.add(Path(log_dir) / 'db-offsite-backup.log',
               format=FORMAT_STRING,
               rotation='00:00',
               retention='14 days',
               level=log_level,
               backtrace=True,
               diagnose=False)
