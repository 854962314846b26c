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
"""
Database of measured schedules, keyed by task signature.
This can be used for warm starting and for skipping already measured schedules.
"""
import copy
import math
import threading
import time
from collections import namedtuple
from typing import Dict, List, Optional, Tuple

from ..schedule import Schedule


class TuningRecord(namedtuple("TuningRecord", ["schedule", "cost", "timestamp"])):
    """One measured schedule.

    Parameters
    ----------
    schedule : dict
        The JSON representation of the schedule, see :py:meth:`Schedule.to_json`.
    cost : float
        The measured cost in seconds.
    timestamp : float
        When the record was inserted.
    """

    __slots__ = ()

    def as_schedule(self) -> Schedule:
        return Schedule.from_json(self.schedule)

    def as_json(self, signature: str) -> dict:
        return {
            "signature": signature,
            "schedule": self.schedule,
            "cost": self.cost,
            "timestamp": self.timestamp,
        }


def make_record(schedule, cost: float, timestamp: Optional[float] = None) -> TuningRecord:
    """Create a record, checking the cost."""
    cost = float(cost)
    if not math.isfinite(cost) or cost < 0:
        raise ValueError(f"Cannot record an invalid cost: {cost}")
    schedule_json = schedule.to_json() if isinstance(schedule, Schedule) else copy.deepcopy(schedule)
    return TuningRecord(schedule_json, cost, time.time() if timestamp is None else float(timestamp))


class Database(object):
    """
    Base class for a record database object.

    Histories are append only: records are never overwritten or deleted, and
    inserting a duplicate is not an error.
    """

    def lookup(self, signature: str) -> Tuple[TuningRecord, ...]:
        """
        Get the history of a task in insertion order.

        Parameters
        ----------
        signature : str
            The task signature.

        Returns
        -------
        records : Tuple[TuningRecord, ...]
            The records, empty for an unseen signature.
        """
        raise NotImplementedError()

    def insert(self, signature: str, schedule, cost: float) -> TuningRecord:
        """
        Append a measured schedule to the history of a task.

        Parameters
        ----------
        signature : str
            The task signature.
        schedule : Union[Schedule, dict]
            The schedule or its JSON representation.
        cost : float
            The measured cost.

        Returns
        -------
        record : TuningRecord
            The inserted record.
        """
        raise NotImplementedError()

    def get_top_k(self, signature: str, k: int) -> List[TuningRecord]:
        """
        Get the best records of a task, in cost order.

        Records with equal cost keep their insertion order.
        """
        if k < 0:
            raise ValueError(f"k must be non-negative, got {k}")
        return sorted(self.lookup(signature), key=lambda rec: rec.cost)[:k]

    def signatures(self) -> List[str]:
        """All signatures with at least one record."""
        raise NotImplementedError()

    def __len__(self) -> int:
        return sum(len(self.lookup(sig)) for sig in self.signatures())


class MemoryDatabase(Database):
    """
    In-memory version of record database

    Writers of one signature are serialized by a per-signature lock. Each
    history is an immutable tuple that is replaced on insert, so readers take
    a lock free snapshot.
    """

    def __init__(self):
        self._records: Dict[str, Tuple[TuningRecord, ...]] = {}
        self._writer_locks: Dict[str, threading.Lock] = {}
        self._writer_locks_lock = threading.Lock()

    def _writer_lock(self, signature: str) -> threading.Lock:
        with self._writer_locks_lock:
            return self._writer_locks.setdefault(signature, threading.Lock())

    def lookup(self, signature: str) -> Tuple[TuningRecord, ...]:
        return self._records.get(signature, ())

    def insert(self, signature: str, schedule, cost: float) -> TuningRecord:
        record = make_record(schedule, cost)
        with self._writer_lock(signature):
            self._append(signature, record)
        return record

    def _append(self, signature: str, record: TuningRecord) -> None:
        self._records[signature] = self._records.get(signature, ()) + (record,)

    def signatures(self) -> List[str]:
        return list(self._records)
