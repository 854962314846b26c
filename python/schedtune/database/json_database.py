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
"""The default database that uses a JSON File to store tuning records"""
import json
import os
import threading

from ..error import DatabaseError
from ..logging import get_logger
from .database import MemoryDatabase, TuningRecord, make_record

logger = get_logger(__name__)  # pylint: disable=invalid-name


def _decode_line(line: str):
    row = json.loads(line)
    if not isinstance(row, dict) or not isinstance(row.get("schedule"), dict):
        raise ValueError("record must be an object with a schedule object")
    signature = row["signature"]
    if not isinstance(signature, str):
        raise ValueError("signature must be a string")
    return signature, make_record(row["schedule"], row["cost"], row.get("timestamp"))


class JSONDatabase(MemoryDatabase):
    """The class of tuning records persisted as JSON lines.

    Every record is one line ``{"signature", "schedule", "cost", "timestamp"}``
    appended to the file. Existing lines are loaded on construction; malformed
    lines are skipped with a warning.

    Parameters
    ----------
    path : str
        The path to the record file.
    allow_missing : bool
        Whether to create the file (and its directory) if it does not exist.
    """

    def __init__(self, path: str, allow_missing: bool = True):
        super().__init__()
        self.path = path
        self._file_lock = threading.Lock()
        if not os.path.exists(path):
            if not allow_missing:
                raise DatabaseError(f"Record file does not exist: {path}")
            dirname = os.path.dirname(os.path.abspath(path))
            try:
                os.makedirs(dirname, exist_ok=True)
                with open(path, "a", encoding="utf-8"):
                    pass
            except OSError as err:
                raise DatabaseError(f"Cannot create record file {path}: {err}") from err
        self._load()

    def _load(self) -> None:
        try:
            with open(self.path, "r", encoding="utf-8") as ifile:
                lines = ifile.readlines()
        except OSError as err:
            raise DatabaseError(f"Cannot read record file {self.path}: {err}") from err
        num_skipped = 0
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                signature, record = _decode_line(line)
            except (ValueError, KeyError, TypeError) as err:
                num_skipped += 1
                logger.warning("Skipping malformed record at %s:%d: %s", self.path, lineno, err)
                continue
            self._append(signature, record)
        logger.info(
            "Loaded %d records of %d tasks from %s (%d skipped)",
            len(self),
            len(self.signatures()),
            self.path,
            num_skipped,
        )

    def insert(self, signature: str, schedule, cost: float) -> TuningRecord:
        record = make_record(schedule, cost)
        line = json.dumps(record.as_json(signature), sort_keys=True)
        with self._writer_lock(signature):
            with self._file_lock:
                try:
                    with open(self.path, "a", encoding="utf-8") as ofile:
                        ofile.write(line + "\n")
                except OSError as err:
                    raise DatabaseError(f"Cannot write record file {self.path}: {err}") from err
            self._append(signature, record)
        return record
