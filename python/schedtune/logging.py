# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.
"""Logging interface in schedtune"""
import logging
import logging.config
import os
import os.path as osp
from logging import Logger
from typing import Any, Callable, Dict, List, Optional

GLOBAL_LOGGER_NAME = "schedtune"
STANDARD_FORMATTER = "schedtune.standard_formatter"


def get_logger(name: str) -> Logger:
    """Create or get a logger by its name. This is essentially a wrapper of python's native logger.

    Parameters
    ----------
    name : str
        The name of the logger.

    Returns
    -------
    logger : Logger
        The logger instance.
    """
    return logging.getLogger(name)


def get_logging_func(logger: Logger) -> Optional[Callable[[int, str, int, str], None]]:
    """Get the logging function.

    Parameters
    ----------
    logger : Logger
        The logger instance.
    Returns
    -------
    result : Optional[Callable]
        The function to do the specified level of logging.
    """
    if logger is None:
        return None

    level2log = {
        logging.DEBUG: logger.debug,
        logging.INFO: logger.info,
        logging.WARNING: logger.warning,
        logging.ERROR: logger.error,
        # logging.FATAL not included
    }

    def logging_func(level: int, filename: str, lineo: int, msg: str):
        level2log[level](f"[{os.path.basename(filename)}:{lineo}] " + msg)

    return logging_func


def _file_handler(filename: str) -> Dict[str, Any]:
    return {
        "class": "logging.FileHandler",
        "filename": filename,
        "mode": "a",
        "level": "DEBUG",
        "formatter": STANDARD_FORMATTER,
    }


def create_loggers(log_dir: str, logger_names: List[str]) -> None:
    """Configure the global logger and one file-backed logger per name.

    The global logger writes to the console and to ``schedtune.tune.log``.
    Each named logger writes to ``<log_dir>/<name>.log`` only.

    Parameters
    ----------
    log_dir : str
        The directory of the log files.
    logger_names : List[str]
        The names of the per-task loggers.
    """
    global_logger = logging.getLogger(GLOBAL_LOGGER_NAME)
    if global_logger.level == logging.NOTSET:
        global_logger.setLevel(logging.INFO)
    level = logging.getLevelName(global_logger.level)

    handlers = {
        GLOBAL_LOGGER_NAME + ".console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stdout",
            "formatter": STANDARD_FORMATTER,
            "level": level,
        },
        GLOBAL_LOGGER_NAME + ".file": _file_handler(
            osp.join(log_dir, GLOBAL_LOGGER_NAME + ".tune.log")
        ),
    }
    loggers = {
        GLOBAL_LOGGER_NAME: {
            "level": level,
            "handlers": [GLOBAL_LOGGER_NAME + ".console", GLOBAL_LOGGER_NAME + ".file"],
            "propagate": False,
        }
    }
    for name in logger_names:
        handlers[name + ".file"] = _file_handler(osp.join(log_dir, name + ".log"))
        loggers[name] = {"level": "DEBUG", "handlers": [name + ".file"], "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                STANDARD_FORMATTER: {
                    "format": "%(asctime)s [%(levelname)s] %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": handlers,
            "loggers": loggers,
        }
    )
    global_logger.info("Logging directory: %s", log_dir)


def get_loggers_from_work_dir(
    work_dir: str,
    task_names: List[str],
) -> List[Logger]:
    """Create one file-backed logger per task under `work_dir/logs`.

    Parameters
    ----------
    work_dir : str
        The work directory.
    task_names : List[str]
        The list of task names.

    Returns
    -------
    loggers : List[Logger]
        The list of loggers, in the order of `task_names`.
    """
    log_dir = osp.join(work_dir, "logs")
    os.makedirs(log_dir, exist_ok=True)
    pattern = __name__ + ".task_{i:0" + f"{len(str(len(task_names) - 1))}" + "d}_{name}"
    loggers = [pattern.format(i=i, name=name) for i, name in enumerate(task_names)]
    create_loggers(log_dir, loggers)
    return [get_logger(logger) for logger in loggers]
