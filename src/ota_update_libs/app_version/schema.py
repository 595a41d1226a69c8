# Copyright 2025 TIER IV, INC. All rights reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Version identifiers of update files and upgrade manifests.

A version is 2 to 4 numeric components, optionally followed by a pre-release
    tag and an opaque build id, i.e. `[v]N.N[.N[.N]][-<tag>[.<build_id>]]`.

Ordering:
1. numeric components left-to-right, missing trailing components count as 0;
2. a release (no tag) outranks any pre-release of the same numbers;
3. pre-release tags rank `alpha < beta == preview < rc`.

The build id never takes part in ordering or equality, callers that need a
    total order over files add the modification time as a secondary key.
"""

from __future__ import annotations

import re
from enum import Enum
from functools import total_ordering
from typing import Any, Optional, Tuple

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema, core_schema
from typing_extensions import Self

from ota_update_libs.errors import InvalidVersion

VERSION_PATTERN = re.compile(
    r"^[vV]?(?P<numbers>\d+(?:\.\d+){1,3})"
    r"(?:-(?P<tag>alpha|beta|preview|rc)(?:\.(?P<build_id>[0-9A-Za-z]+))?)?$",
    re.IGNORECASE,
)
NUMERIC_WIDTH = 4
CANONICAL_MIN_WIDTH = 3


class PrereleaseTag(str, Enum):
    ALPHA = "alpha"
    BETA = "beta"
    PREVIEW = "preview"
    RC = "rc"

    @property
    def rank(self) -> int:
        return _TAG_RANK[self]


_TAG_RANK = {
    PrereleaseTag.ALPHA: 0,
    PrereleaseTag.BETA: 1,
    PrereleaseTag.PREVIEW: 1,
    PrereleaseTag.RC: 2,
}


@total_ordering
class AppVersion:
    __slots__ = ("_numbers", "_tag", "_build_id", "_raw")

    def __init__(
        self,
        numbers: Tuple[int, ...],
        tag: Optional[PrereleaseTag] = None,
        build_id: Optional[str] = None,
        *,
        raw: Optional[str] = None,
    ) -> None:
        if not 2 <= len(numbers) <= NUMERIC_WIDTH:
            raise InvalidVersion(f"expect 2 to 4 numeric components, get {numbers}")
        if any(_n < 0 for _n in numbers):
            raise InvalidVersion(f"negative version component in {numbers}")
        self._numbers = tuple(numbers)
        self._tag = tag
        self._build_id = build_id
        self._raw = raw

    @classmethod
    def parse(cls, _in: str) -> Self:
        """Parse <_in>, raise InvalidVersion if it is not a valid version string."""
        if not isinstance(_in, str):
            raise InvalidVersion(f"invalid {type(_in)=}")
        _stripped = _in.strip()
        if not (_ma := VERSION_PATTERN.match(_stripped)):
            raise InvalidVersion(f"invalid version string: {_in!r}")

        _numbers = tuple(int(_n) for _n in _ma.group("numbers").split("."))
        _tag = _ma.group("tag")
        return cls(
            _numbers,
            PrereleaseTag(_tag.lower()) if _tag else None,
            _ma.group("build_id"),
            raw=_stripped,
        )

    @classmethod
    def try_parse(cls, _in: Optional[str]) -> Optional[Self]:
        if not _in:
            return None
        try:
            return cls.parse(_in)
        except InvalidVersion:
            return None

    @property
    def numbers(self) -> Tuple[int, ...]:
        return self._numbers

    @property
    def tag(self) -> Optional[PrereleaseTag]:
        return self._tag

    @property
    def build_id(self) -> Optional[str]:
        return self._build_id

    @property
    def raw(self) -> str:
        """The string this version was parsed from, or the canonical form."""
        return self._raw or self.format()

    @property
    def is_prerelease(self) -> bool:
        return self._tag is not None

    @property
    def sort_key(self) -> Tuple[Tuple[int, ...], int, int]:
        _padded = self._numbers + (0,) * (NUMERIC_WIDTH - len(self._numbers))
        if self._tag is None:
            return _padded, 1, 0
        return _padded, 0, self._tag.rank

    def format(self) -> str:
        """Format to the canonical `N.N.N[.N][-tag[.build_id]]` form."""
        _numbers = self._numbers + (0,) * (CANONICAL_MIN_WIDTH - len(self._numbers))
        res = ".".join(str(_n) for _n in _numbers)
        if self._tag is not None:
            res = f"{res}-{self._tag.value}"
            if self._build_id:
                res = f"{res}.{self._build_id}"
        return res

    def __str__(self) -> str:
        return self.format()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.format()!r})"

    def __hash__(self) -> int:
        return hash(self.sort_key)

    def __eq__(self, value: object) -> bool:
        if not isinstance(value, AppVersion):
            return NotImplemented
        return self.sort_key == value.sort_key

    def __lt__(self, value: object) -> bool:
        if not isinstance(value, AppVersion):
            return NotImplemented
        return self.sort_key < value.sort_key

    @classmethod
    def _from_str_validator(cls, data: Any) -> Self:
        if isinstance(data, cls):
            return data
        if isinstance(data, str):
            try:
                return cls.parse(data)
            except InvalidVersion as e:
                # NOTE: pydantic only wraps ValueError/AssertionError into ValidationError
                raise ValueError(str(e)) from None
        raise ValueError(f"invalid {type(data)=}")

    def _to_str_serializer(self) -> str:
        return self.format()

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source_type: Any, handler: GetCoreSchemaHandler
    ) -> CoreSchema:
        _plain_validator = core_schema.no_info_plain_validator_function(
            cls._from_str_validator
        )
        _plain_serializer = core_schema.plain_serializer_function_ser_schema(
            cls._to_str_serializer
        )

        json_schema = core_schema.chain_schema(
            [
                core_schema.str_schema(),
                _plain_validator,
            ]
        )
        return core_schema.json_or_python_schema(
            json_schema=json_schema,
            python_schema=_plain_validator,
            serialization=_plain_serializer,
        )


def compare_versions(a: AppVersion, b: AppVersion) -> int:
    """Return -1, 0 or 1 as <a> is older than, equal to or newer than <b>."""
    if a < b:
        return -1
    if b < a:
        return 1
    return 0
