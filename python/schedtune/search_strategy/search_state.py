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
"""A candidate produced by the search."""
from collections import namedtuple


class SearchState(namedtuple("SearchState", ["schedule", "body", "predicted_cost"])):
    """One candidate schedule with its transformed body and predicted cost.

    Parameters
    ----------
    schedule : Schedule
        The schedule decisions.
    body : Stmt
        The loop nest produced by applying the schedule.
    predicted_cost : float
        The cost model estimate, lower is better.
    """

    __slots__ = ()

    def __new__(cls, schedule, body, predicted_cost=0.0):
        return super().__new__(cls, schedule, body, float(predicted_cost))

    def with_cost(self, predicted_cost: float) -> "SearchState":
        return SearchState(self.schedule, self.body, predicted_cost)
