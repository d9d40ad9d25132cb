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
Access to the ZFS command line driver.

Everything the provisioner knows about datasets it learns here, by
running :program:`zfs` and parsing its tab-separated output.  Nothing is
cached between calls.
"""

import asyncio
import contextlib
import logging
import os
import shlex
import subprocess

import zfsprov.config
import zfsprov.exc
import zfsprov.storage

from typing import (
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
)

_sudo = "sudo"

#: columns listed for every dataset
LIST_COLUMNS = ["name", "type", "mountpoint"]


class DatasetBusy(zfsprov.exc.StorageEngineError):
    """
    Dataset is busy.  Causes:

      * associated device file open (e.g. exported by a target)
      * fs mounted with open files
    """


class DatasetAlreadyExists(zfsprov.exc.AlreadyExistsError):
    """
    Dataset already exists.

    Raised by creation; the existing dataset is left untouched.
    """


class DatasetDoesNotExist(zfsprov.exc.NotFoundError):
    """
    Dataset does not exist.

    Raised when an operation with a dataset fails because it cannot
    be found in the pool (e.g. it was deleted).
    """


def dataset_in_root(dataset: str, root: str) -> bool:
    """
    Checks that a dataset is within a root.

    >>> dataset_in_root("a/b", "a")
    True
    >>> dataset_in_root("a", "a")
    True
    >>> dataset_in_root("a/b", "a/c")
    False
    """
    return dataset == root or (dataset + "/").startswith(root + "/")


@contextlib.contextmanager
def _enoent_is_unavailable():
    try:
        yield
    except FileNotFoundError as exc:
        # Oops.  No ZFS.  Raise the appropriate exception.
        raise zfsprov.exc.EngineUnavailableError(
            "ZFS is not available on this system",
        ) from exc


def zfs(
    *cmd: str,
    log: logging.Logger,
) -> str:
    """
    Call :program:`zfs` to execute a ZFS operation.

    Returns the standard output of the program run.

    Raises a `zfsprov.exc.StorageEngineError` if the command fails.

    This version is synchronous.
    """
    thecmd, environ = _generate_zfs_command(cmd)
    with _enoent_is_unavailable():
        p = subprocess.run(
            thecmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            check=False,
            close_fds=True,
            env=environ,
        )
    return _process_zfs_output(
        thecmd,
        p.returncode,
        p.stdout,
        p.stderr,
        log=log,
    )


async def zfs_async(
    *cmd: str,
    log: logging.Logger,
) -> str:
    """
    Asynchronous version of `zfs()`.
    """
    thecmd, environ = _generate_zfs_command(cmd)
    with _enoent_is_unavailable():
        p = await asyncio.create_subprocess_exec(
            *thecmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=environ,
            close_fds=True,
        )
    stdout, stderr = await p.communicate()
    returncode = await p.wait()
    return _process_zfs_output(
        thecmd,
        returncode,
        stdout,
        stderr,
        log=log,
    )


def _generate_zfs_command(
    cmd: Tuple[str, ...],
) -> Tuple[List[str], Dict[str, str]]:
    thecmd = [zfsprov.config.system_path["zfs"]] + list(cmd)
    if os.getuid() != 0:
        thecmd = [_sudo] + thecmd
    environ = {**os.environ, "LC_ALL": "C.UTF-8"}
    return thecmd, environ


def _process_zfs_output(
    cmd: List[str],
    returncode: int,
    stdout: bytes,
    stderr: bytes,
    log: logging.Logger,
) -> str:
    thecmd_shell = " ".join(shlex.quote(x) for x in cmd)
    err = stderr.decode()
    if stdout:
        numlines = len(stdout.splitlines())
        if numlines > 2:
            log.debug("%s -> (%s lines)", thecmd_shell, numlines)
        else:
            log.debug("%s -> %s", thecmd_shell, stdout.decode().rstrip())
    else:
        log.debug("%s -> (no output)", thecmd_shell)
    if returncode == 0 and err:
        log.warning("%s succeeded but produced stderr: %s", thecmd_shell, err)
    elif returncode != 0:
        log.debug(
            "%s failed with %s and produced stderr: %s",
            thecmd_shell,
            returncode,
            err,
        )
        msg = err.strip() or "%s failed with %s" % (thecmd_shell, returncode)
        if err.rstrip().endswith("dataset is busy"):
            raise DatasetBusy(msg, stderr=err)
        if err.rstrip().endswith("dataset already exists"):
            raise DatasetAlreadyExists(msg, stderr=err)
        if err.rstrip().endswith("dataset does not exist"):
            raise DatasetDoesNotExist(msg, stderr=err)
        raise zfsprov.exc.StorageEngineError(msg, stderr=err)
    return stdout.decode()


def _parse_table(text: str, columns: List[str]) -> List[Dict[str, str]]:
    result: List[Dict[str, str]] = []
    for line in text.splitlines():
        if not line.rstrip():
            continue
        fields = line.split("\t")
        row: Dict[str, str] = {}
        for k, v in zip(columns, fields):
            row[k] = v
        result.append(row)
    return result


def _row_to_dataset(row: Dict[str, str]) -> zfsprov.storage.ManagedDataset:
    mountpoint: Optional[str] = row.get("mountpoint")
    if row["type"] != "filesystem" or mountpoint in ("-", "none", None):
        mountpoint = None
    return zfsprov.storage.ManagedDataset(
        name=row["name"],
        kind=row["type"],
        mountpoint=mountpoint,
    )


def _list_args(depth: Optional[int], columns: List[str]) -> List[str]:
    args = ["list", "-Hp", "-t", "filesystem,volume,snapshot"]
    if depth is None:
        args.append("-r")
    else:
        args.extend(["-d", str(depth)])
    args.extend(["-o", ",".join(columns)])
    return args


def _options(properties: Dict[str, str]) -> List[str]:
    cmd: List[str] = []
    for optname, optval in properties.items():
        cmd += ["-o", f"{optname}={optval}"]
    return cmd


class ZFSAccessor:
    """
    Utility class to enumerate, create, inspect and destroy datasets
    below a root dataset.
    """

    def __init__(self, root: str) -> None:
        """
        Initialize.

        `root` is the root dataset against which all operations will be
        validated.  If an operation is attempted outside the root,
        an error is raised.
        """
        self.root = root

    def __repr__(self) -> str:
        return "<{} root={!r}>".format(type(self).__name__, self.root)

    async def _get_prop_table_async(
        self,
        dataset: str,
        columns: List[str],
        log: logging.Logger,
    ) -> List[Dict[str, str]]:
        text = await zfs_async(
            "list",
            "-Hp",
            "-o",
            ",".join(columns),
            dataset,
            log=log,
        )
        return _parse_table(text, columns)

    def _get_prop_table(
        self,
        dataset: str,
        columns: List[str],
        log: logging.Logger,
    ) -> List[Dict[str, str]]:
        out = zfs(
            "list",
            "-Hp",
            "-o",
            ",".join(columns),
            dataset,
            log=log,
        )
        return _parse_table(out, columns)

    async def list_children_async(
        self,
        dataset: str,
        log: logging.Logger,
        depth: int = 1,
    ) -> List[zfsprov.storage.ManagedDataset]:
        """
        List `dataset` and its descendants up to `depth` levels down,
        snapshots included.  The dataset itself comes first.
        """
        assert dataset_in_root(dataset, self.root)
        text = await zfs_async(
            *_list_args(depth, LIST_COLUMNS),
            dataset,
            log=log,
        )
        return [_row_to_dataset(row) for row in _parse_table(text, LIST_COLUMNS)]

    def list_descendants(
        self,
        dataset: str,
        log: logging.Logger,
    ) -> List[zfsprov.storage.ManagedDataset]:
        """
        Synchronously list `dataset` and all its descendants, snapshots
        included.
        """
        assert dataset_in_root(dataset, self.root)
        text = zfs(
            *_list_args(None, LIST_COLUMNS),
            dataset,
            log=log,
        )
        return [_row_to_dataset(row) for row in _parse_table(text, LIST_COLUMNS)]

    async def create_filesystem_async(
        self,
        dataset: str,
        properties: Dict[str, str],
        log: logging.Logger,
    ) -> None:
        """
        Creates a file system with all `properties` applied at once.

        The dataset must not already exist; its parent must.
        """
        assert dataset_in_root(dataset, self.root)
        cmd = ["create"] + _options(properties) + [dataset]
        await zfs_async(*cmd, log=log)

    async def create_volume_async(
        self,
        dataset: str,
        size: int,
        properties: Dict[str, str],
        log: logging.Logger,
    ) -> None:
        """
        Creates a volume of exactly `size` bytes.

        The volume is fully reserved (not sparse).

        The volume must not already exist; its parent must.
        """
        assert dataset_in_root(dataset, self.root)
        cmd = ["create", "-V", str(size)] + _options(properties) + [dataset]
        await zfs_async(*cmd, log=log)

    async def get_property_async(
        self,
        dataset: str,
        propname: str,
        log: logging.Logger,
    ) -> str:
        """Get a property of a dataset, as the raw string ZFS prints."""
        assert dataset_in_root(dataset, self.root)
        res = await self._get_prop_table_async(dataset, [propname], log=log)
        return res[0][propname]

    def get_property(
        self,
        dataset: str,
        propname: str,
        log: logging.Logger,
    ) -> str:
        """
        Sync version of `get_property_async()`.
        """
        assert dataset_in_root(dataset, self.root)
        res = self._get_prop_table(dataset, [propname], log=log)
        return res[0][propname]

    def get_properties(
        self,
        dataset: str,
        propnames: Iterable[str],
        log: logging.Logger,
    ) -> Dict[str, str]:
        """Get several properties of a dataset with one invocation."""
        assert dataset_in_root(dataset, self.root)
        res = self._get_prop_table(dataset, list(propnames), log=log)
        return res[0]

    async def destroy_async(
        self,
        dataset: str,
        log: logging.Logger,
        recursive: bool = True,
    ) -> None:
        """
        Destroy a dataset, and unless told otherwise all its
        descendants (snapshots included).
        """
        assert dataset_in_root(dataset, self.root)
        assert dataset != self.root, "refusing to destroy the root dataset"
        cmd = ["destroy"] + (["-r"] if recursive else []) + [dataset]
        await zfs_async(*cmd, log=log)
