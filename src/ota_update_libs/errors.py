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
"""Exceptions raised by the upgrade engine.

Client errors (`NotFound`, `InvalidInput`) are meant to be reported to the
    update client as such, all others are generic server failures.
"""


class UpdateServerError(Exception):
    client_error = False


class NotFound(UpdateServerError):
    client_error = True


class InvalidInput(UpdateServerError):
    client_error = True


class InvalidVersion(InvalidInput, ValueError): ...


class CorruptAsset(UpdateServerError): ...


class ResolutionFailed(UpdateServerError): ...


class DependencyCycle(ResolutionFailed): ...


class UpgradeConflict(ResolutionFailed): ...


class DuplicateUpgrade(ResolutionFailed): ...


class BuildFailed(UpdateServerError): ...


class SourceMissing(BuildFailed, FileNotFoundError): ...


class IntegrityMismatch(BuildFailed): ...


class CachePermissionDenied(BuildFailed, PermissionError): ...


class OperationCancelled(UpdateServerError): ...
