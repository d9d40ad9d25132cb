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

import importlib.metadata
import logging
import os
import socket
import string
import tempfile
from contextlib import contextmanager, suppress

import zfsprov.exc

LOGGER = logging.getLogger('zfsprov.utils')


def parse_size(size):
    units = [
        ('K', 1000), ('KB', 1000),
        ('M', 1000 * 1000), ('MB', 1000 * 1000),
        ('G', 1000 * 1000 * 1000), ('GB', 1000 * 1000 * 1000),
        ('T', 1000 ** 4), ('TB', 1000 ** 4),
        ('Ki', 1024), ('KiB', 1024),
        ('Mi', 1024 * 1024), ('MiB', 1024 * 1024),
        ('Gi', 1024 * 1024 * 1024), ('GiB', 1024 * 1024 * 1024),
        ('Ti', 1024 ** 4), ('TiB', 1024 ** 4),
    ]

    size = size.strip().upper()
    if size.isdigit():
        return int(size)

    # longest suffixes first, so that "KiB" is not taken for "B"-less "Ki"
    for unit, multiplier in sorted(units, key=lambda u: -len(u[0])):
        if size.endswith(unit.upper()):
            number = size[:-len(unit)].strip()
            if number.isdigit():
                return int(number) * multiplier

    raise zfsprov.exc.InvalidArgumentError(
        "Invalid size: {0}.".format(size))


def get_entry_point_one(group, name):
    epoints = tuple(importlib.metadata.entry_points(group=group, name=name))
    if not epoints:
        raise KeyError(name)
    if len(epoints) > 1:
        raise TypeError(
            'more than 1 implementation of {!r} found: {}'.format(name,
                ', '.join(ep.value for ep in epoints)))
    return epoints[0].load()


def get_fqdn():
    ''' Fully qualified name of this host, as advertised to clients '''
    return socket.getfqdn()


@contextmanager
def replace_file(dst, *, permissions, close_on_success=True,
                 logger=LOGGER, log_level=logging.DEBUG):
    ''' Yield a tempfile whose name starts with dst. If the block does
        not raise an exception, apply permissions and persist the
        tempfile to dst (which is allowed to already exist). Otherwise
        ensure that the tempfile is cleaned up.
    '''
    tmp_dir, prefix = os.path.split(dst + '~')
    tmp = tempfile.NamedTemporaryFile(dir=tmp_dir, prefix=prefix, delete=False)
    try:
        yield tmp
        tmp.flush()
        os.fchmod(tmp.fileno(), permissions)
        os.fsync(tmp.fileno())
        if close_on_success:
            tmp.close()
        rename_file(tmp.name, dst, logger=logger, log_level=log_level)
    except BaseException:
        try:
            tmp.close()
        finally:
            remove_file(tmp.name, logger=logger, log_level=log_level)
        raise

def rename_file(src, dst, *, logger=LOGGER, log_level=logging.DEBUG):
    ''' Durably rename src to dst. '''
    os.rename(src, dst)
    dst_dir = os.path.dirname(dst)
    src_dir = os.path.dirname(src)
    fsync_path(dst_dir)
    if src_dir != dst_dir:
        fsync_path(src_dir)
    logger.log(log_level, 'Renamed file: %r -> %r', src, dst)

def remove_file(path, *, logger=LOGGER, log_level=logging.DEBUG):
    ''' Durably remove the file at path, if it exists. Return whether
        we removed it. '''
    with suppress(FileNotFoundError):
        os.remove(path)
        fsync_path(os.path.dirname(path))
        logger.log(log_level, 'Removed file: %r', path)
        return True
    return False

def fsync_path(path):
    fd = os.open(path, os.O_RDONLY)  # works for a file or a directory
    try:
        os.fsync(fd)
    finally:
        os.close(fd)

def sanitize_stderr_for_log(untrusted_stderr: bytes) -> str:
    """Helper function to sanitize external program stderr for logging"""
    # limit size
    untrusted_stderr = untrusted_stderr[:4096]
    # limit to subset of printable ASCII, especially do not allow newlines,
    # control characters etc
    allowed = string.ascii_letters + string.digits + string.punctuation + ' '
    allowed_bytes = allowed.encode()
    stderr = bytes(b if b in allowed_bytes else b'_'[0]
                   for b in untrusted_stderr)
    return stderr.decode('ascii')
