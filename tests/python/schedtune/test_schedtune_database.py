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
# pylint: disable=missing-module-docstring,missing-function-docstring,missing-class-docstring
import json
import os.path as osp
import tempfile
from concurrent.futures import ThreadPoolExecutor

import pytest
import schedtune
import schedtune.testing
from schedtune.database import Database, JSONDatabase, MemoryDatabase, TuningRecord
from schedtune.error import DatabaseError
from schedtune.schedule import Schedule

ORDER = ["i_0", "j_0", "i_1", "j_1", "k_0", "k_1", "i_2", "j_2"]


def _schedule(tile_i=1, **kwargs):
    return Schedule({"i": (tile_i, 1), "j": (1, 1), "k": (1,)}, ORDER, **kwargs)


def _fill(db):
    db.insert("sig_a", _schedule(1), 3.0)
    db.insert("sig_a", _schedule(2), 1.0)
    db.insert("sig_b", _schedule(4), 5.0)
    db.insert("sig_a", _schedule(4), 1.0)
    db.insert("sig_a", _schedule(5), 2.0)


def test_memory_database_lookup():
    db = MemoryDatabase()
    assert db.lookup("sig_a") == ()
    assert len(db) == 0
    _fill(db)
    records = db.lookup("sig_a")
    assert [rec.cost for rec in records] == [3.0, 1.0, 1.0, 2.0]
    assert records[1].as_schedule() == _schedule(2)
    assert sorted(db.signatures()) == ["sig_a", "sig_b"]
    assert len(db) == 5


def test_get_top_k():
    db = MemoryDatabase()
    _fill(db)
    top = db.get_top_k("sig_a", 3)
    assert [rec.cost for rec in top] == [1.0, 1.0, 2.0]
    # ties keep insertion order
    assert [rec.as_schedule().tile("i") for rec in top] == [(2, 1), (4, 1), (5, 1)]
    assert len(db.get_top_k("sig_a", 10)) == 4
    assert db.get_top_k("sig_a", 0) == []
    assert db.get_top_k("sig_c", 3) == []
    with pytest.raises(ValueError):
        db.get_top_k("sig_a", -1)


def test_insert_returns_record():
    db = MemoryDatabase()
    record = db.insert("sig", _schedule(parallel=1), 0.5)
    assert isinstance(record, TuningRecord)
    assert record.schedule == _schedule(parallel=1).to_json()
    assert record.cost == 0.5
    assert record.timestamp > 0
    assert record.as_json("sig")["signature"] == "sig"


def test_insert_duplicate():
    db = MemoryDatabase()
    db.insert("sig", _schedule(), 1.0)
    db.insert("sig", _schedule(), 1.0)
    assert len(db.lookup("sig")) == 2


@pytest.mark.parametrize("cost", [float("inf"), float("nan"), -1.0])
def test_insert_invalid_cost(cost):
    db = MemoryDatabase()
    with pytest.raises(ValueError):
        db.insert("sig", _schedule(), cost)
    assert db.lookup("sig") == ()


def test_snapshot_is_stable():
    db = MemoryDatabase()
    db.insert("sig", _schedule(), 1.0)
    snapshot = db.lookup("sig")
    db.insert("sig", _schedule(2), 0.5)
    assert len(snapshot) == 1
    assert len(db.lookup("sig")) == 2


def test_concurrent_insert():
    db = MemoryDatabase()

    def _insert(i):
        db.insert(f"sig_{i % 4}", _schedule(i % 7 + 1), float(i))

    with ThreadPoolExecutor(max_workers=8) as executor:
        list(executor.map(_insert, range(400)))
    assert len(db) == 400
    for sig in db.signatures():
        costs = [rec.cost for rec in db.lookup(sig)]
        assert len(costs) == 100
        assert sorted(costs) == sorted(set(costs))


def test_base_database_is_abstract():
    db = Database()
    with pytest.raises(NotImplementedError):
        db.lookup("sig")
    with pytest.raises(NotImplementedError):
        db.insert("sig", _schedule(), 1.0)


def test_json_database_round_trip():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = osp.join(tmpdir, "nested", "database.json")
        db = JSONDatabase(path)
        assert osp.exists(path)
        _fill(db)
        reloaded = JSONDatabase(path, allow_missing=False)
        assert sorted(reloaded.signatures()) == ["sig_a", "sig_b"]
        assert reloaded.lookup("sig_a") == db.lookup("sig_a")
        assert reloaded.get_top_k("sig_a", 1)[0].as_schedule() == _schedule(2)
        with open(path, encoding="utf-8") as ifile:
            lines = ifile.readlines()
    assert len(lines) == 5
    assert set(json.loads(lines[0])) == {"signature", "schedule", "cost", "timestamp"}


def test_json_database_skips_malformed_lines():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = osp.join(tmpdir, "database.json")
        db = JSONDatabase(path)
        db.insert("sig", _schedule(), 1.0)
        with open(path, "a", encoding="utf-8") as ofile:
            ofile.write("not json\n")
            ofile.write("\n")
            ofile.write(json.dumps({"signature": "sig", "schedule": [], "cost": 1.0}) + "\n")
            ofile.write(json.dumps({"signature": "sig", "cost": 1.0}) + "\n")
            ofile.write(json.dumps({"signature": 1, "schedule": {}, "cost": 1.0}) + "\n")
            row = {"signature": "sig", "schedule": _schedule(3).to_json(), "cost": "inf"}
            ofile.write(json.dumps(row) + "\n")
        db.insert("sig", _schedule(2), 0.5)
        reloaded = JSONDatabase(path)
    assert [rec.cost for rec in reloaded.lookup("sig")] == [1.0, 0.5]


def test_json_database_missing_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(DatabaseError):
            JSONDatabase(osp.join(tmpdir, "missing.json"), allow_missing=False)


if __name__ == "__main__":
    schedtune.testing.main()
