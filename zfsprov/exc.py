#
# zfs-provisioner - ZFS backed persistent volumes for Kubernetes
#
# Copyright (C) 2026  The zfs-provisioner developers
#
# This library is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License as published by the Free Software Foundation; either
# version 2.1 of the License, or (at your option) any later version.
#
# This library is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public
# License along with this library; if not, see <https://www.gnu.org/licenses/>.
#

"""
zfs-provisioner exception hierarchy
"""


class ProvisionerException(Exception):
    """Exception that can be shown to the user"""


class InvalidArgumentError(ProvisionerException, ValueError):
    """The request is malformed; rejected before any side effect."""


class ConfigurationError(ProvisionerException):
    """Provisioner configuration cannot be loaded or is invalid."""

    def __init__(self, msg, path=None):
        if path is not None:
            msg = "{!s}: {!s}".format(path, msg)
        super().__init__(msg)
        self.path = path


class StorageEngineError(ProvisionerException):
    """The storage engine refused an operation.

    :ivar stderr: what the engine said, if anything
    """

    def __init__(self, msg, stderr=None):
        super().__init__(msg)
        self.stderr = stderr


class EngineUnavailableError(StorageEngineError):
    """The storage engine cannot be reached at all."""


class DatasetLookupError(EngineUnavailableError):
    """Children of a dataset could not be enumerated.

    This is distinct from a lookup that simply found nothing.
    """

    def __init__(self, parent, msg=None, stderr=None):
        super().__init__(
            msg or "Listing datasets under {!r} failed".format(parent),
            stderr=stderr,
        )
        self.parent = parent


class AlreadyExistsError(StorageEngineError):
    """The dataset to be created already exists."""


class NotFoundError(StorageEngineError, KeyError):
    """The dataset does not exist."""

    def __str__(self):
        # KeyError overrides __str__ method
        return ProvisionerException.__str__(self)


class DestroyError(StorageEngineError):
    """Dataset could not be destroyed; the volume data is still there."""

    def __init__(self, dataset, msg=None, stderr=None):
        super().__init__(
            msg or "Destroying dataset {!r} failed".format(dataset),
            stderr=stderr,
        )
        self.dataset = dataset


class ExportDaemonError(ProvisionerException):
    """The export daemon failed to apply or drop a target."""

    def __init__(self, action, returncode, stderr=None):
        super().__init__(
            "tgt-admin {!s} failed with exit code {!s}".format(
                action, returncode
            )
        )
        self.action = action
        self.returncode = returncode
        self.stderr = stderr


class MetricsParseError(ProvisionerException, ValueError):
    """A usage property of a dataset is not a number."""

    def __init__(self, dataset, prop, value):
        super().__init__(
            "Property {!r} of {!r} is not an integer: {!r}".format(
                prop, dataset, value
            )
        )
        self.dataset = dataset
        self.prop = prop
        self.value = value


class TargetConfigError(ProvisionerException):
    """Target descriptor file could not be written."""

    def __init__(self, path, msg=None):
        super().__init__(
            msg or "Writing target configuration {!r} failed".format(path)
        )
        self.path = path
