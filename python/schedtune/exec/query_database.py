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
# pylint: disable=invalid-name
"""Summarize a tuning record file, or pick the best records of each task"""
import argparse
import json
import logging
import os.path as osp
import sys
from typing import List, Optional

from ..database import JSONDatabase
from ..error import DatabaseError


def summarize(db: JSONDatabase, signature: Optional[str] = None, top_k: int = 1) -> List[str]:
    """Return the summary lines of a database."""
    signatures = [signature] if signature else sorted(db.signatures())
    lines = []
    for sig in signatures:
        records = db.lookup(sig)
        if not records:
            lines.append(f"{sig}: no records")
            continue
        best = db.get_top_k(sig, top_k)
        lines.append(f"{sig}: {len(records)} records, best cost {best[0].cost:.6g}")
        if top_k > 1 or signature:
            for rank, rec in enumerate(best):
                lines.append(
                    f"  #{rank} cost={rec.cost:.6g} "
                    f"schedule={json.dumps(rec.schedule, sort_keys=True)}"
                )
    return lines


def pick_best(db: JSONDatabase, output: str) -> int:
    """Write the best record of every task to a new record file.

    Raises a :py:class:`DatabaseError` if `output` already exists.
    """
    if osp.exists(output):
        raise DatabaseError(f"Output record file already exists: {output}")
    out = JSONDatabase(output)
    num = 0
    for sig in sorted(db.signatures()):
        best = db.get_top_k(sig, 1)
        if best:
            out.insert(sig, best[0].schedule, best[0].cost)
            num += 1
    return num


def main(argv: Optional[List[str]] = None) -> int:
    """Main function"""
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("database", type=str, help="The JSON lines record file")
    parser.add_argument("--signature", type=str, default=None, help="Only show this task")
    parser.add_argument("--top-k", type=int, default=1, help="The number of best records to show")
    parser.add_argument("--output", type=str, default=None, help="Write the best records here")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if args.top_k < 1:
        parser.error("--top-k must be positive")
    if args.output and osp.exists(args.output):
        parser.error(f"--output {args.output} already exists")
    db = JSONDatabase(args.database, allow_missing=False)
    for line in summarize(db, args.signature, args.top_k):
        print(line)
    if args.output:
        num = pick_best(db, args.output)
        logging.info("Wrote the best records of %d tasks to %s", num, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
