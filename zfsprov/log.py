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

'''zfs-provisioner logging routines

Messages about one volume go to ``volume.<identity>`` loggers and carry
that name as a prefix, so concurrent operations can be told apart in the
output of the command line tool.

See also: :py:func:`zfsprov.log.get_volume_logger`
'''

import logging
import sys

#: prefix of per-volume logger names
VOLUME_LOGGER_PREFIX = 'volume.'


class Formatter(logging.Formatter):
    def __init__(self, *args, debug=False, **kwargs):
        super().__init__(*args, **kwargs)
        self.debug = debug

    def formatMessage(self, record):
        fmt = ''
        if self.debug:
            fmt += '[%(processName)s %(module)s.%(funcName)s:%(lineno)d] '
        if self.debug or record.name.startswith(VOLUME_LOGGER_PREFIX):
            fmt += '%(name)s: '
        fmt += '%(levelname)s: %(message)s'

        return fmt % record.__dict__


def enable(stream=None):
    '''Log to *stream* (standard error by default) at INFO level

    Does nothing if the root logger is configured already.

    >>> import zfsprov.log
    >>> zfsprov.log.enable()        # doctest: +SKIP
    '''

    if logging.root.handlers:
        return

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(Formatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(logging.INFO)

def enable_debug(stream=None):
    '''Like :py:func:`enable`, but at DEBUG level and with the source
    location of every message'''

    enable(stream)

    for handler in logging.root.handlers:
        handler.setFormatter(Formatter(debug=True))

    logging.root.setLevel(logging.DEBUG)

def get_volume_logger(identity):
    '''Logger for messages about volume *identity*

    :param str identity: volume identity, like ``pvc-1``
    :rtype: :py:class:`logging.Logger`
    '''

    return logging.getLogger(VOLUME_LOGGER_PREFIX + identity)
