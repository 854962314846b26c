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
"""Structured error classes in schedtune.

Only conditions that end a tuning session are raised as exceptions. Problems
that concern a single candidate (an invalid structure, a failed measurement)
are reported as values, see :py:class:`schedtune.analysis.VerifyResult` and
:py:class:`schedtune.measure.MeasureErrorNo`.

Examples
--------
.. code:: python

    raise ConfigurationError(
        "num_rounds must be at least 1, but got {}".format(num_rounds))
"""


class TuneError(RuntimeError):
    """Base class of all errors raised by schedtune."""


class ConfigurationError(TuneError, ValueError):
    """Malformed tuning options, detected before the tuning loop starts.

    Examples
    --------
    .. code:: python

        raise ConfigurationError(
            "measure_quota_per_round (8) exceeds population_size (4)")
    """


class DatabaseError(TuneError):
    """The persistent tuning database could not be opened or written."""
